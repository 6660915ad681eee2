"""Pydantic schemas for the template model and request/response validation."""

from emr_templates.schemas.schema import (
    EDITOR_ID_FIELD,
    EDITOR_PRIVATE_PREFIX,
    BaseItem,
    ChoiceItem,
    GroupItem,
    Item,
    Option,
    Schema,
    Section,
    TableColumn,
    TableItem,
    VisibilityRule,
)
from emr_templates.schemas.template import (
    RestoreRequest,
    Template,
    TemplateCreateRequest,
    TemplateMetadata,
    TemplateStatus,
    TemplateVersion,
    VersionCreateRequest,
)

__all__ = [
    # Schema tree
    "EDITOR_ID_FIELD",
    "EDITOR_PRIVATE_PREFIX",
    "BaseItem",
    "ChoiceItem",
    "GroupItem",
    "Item",
    "Option",
    "Schema",
    "Section",
    "TableColumn",
    "TableItem",
    "VisibilityRule",
    # Template
    "RestoreRequest",
    "Template",
    "TemplateCreateRequest",
    "TemplateMetadata",
    "TemplateStatus",
    "TemplateVersion",
    "VersionCreateRequest",
]
