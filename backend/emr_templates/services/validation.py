"""Checks run before the builder step and before any save."""

from collections import Counter
from typing import List

from emr_templates.config import get_settings
from emr_templates.errors import TemplateValidationError
from emr_templates.schemas.schema import Schema
from emr_templates.schemas.template import TemplateMetadata
from emr_templates.services.schema_ops import collect_keys
from emr_templates.utils.normalization import normalize_key


def metadata_errors(metadata: TemplateMetadata) -> List[str]:
    """Problems that block moving on to the builder step."""
    errors = []
    min_length = get_settings().min_template_name_length
    name = (metadata.name or "").strip()
    if len(name) < min_length:
        errors.append(f"Template name is required (min {min_length} chars)")
    if not (metadata.dept_code or "").strip():
        errors.append("Department is required")
    if not (metadata.record_type_code or "").strip():
        errors.append("Record type is required")
    return errors


def schema_errors(schema: Schema) -> List[str]:
    errors = []
    if not schema.sections:
        errors.append("Add at least one section")
    for section in schema.sections:
        counts = Counter(normalize_key(key) for key in collect_keys(section))
        duplicates = sorted(key for key, count in counts.items() if count > 1)
        if duplicates:
            errors.append(f"Duplicate field keys in section {section.code or section.label}: {', '.join(duplicates)}")
    return errors


def validate_metadata(metadata: TemplateMetadata) -> None:
    errors = metadata_errors(metadata)
    if errors:
        raise TemplateValidationError(errors)


def validate_schema(schema: Schema) -> None:
    errors = schema_errors(schema)
    if errors:
        raise TemplateValidationError(errors)


def validate_template(metadata: TemplateMetadata, schema: Schema) -> None:
    """Raise ``TemplateValidationError`` listing every problem found."""
    errors = metadata_errors(metadata) + schema_errors(schema)
    if errors:
        raise TemplateValidationError(errors)
