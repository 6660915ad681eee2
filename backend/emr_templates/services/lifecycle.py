"""Template version lifecycle: draft/publish/archive transitions and the version ledger.

Two ledger policies exist and must not be mixed up:

- *replace*: the entry whose ``v`` equals the template's current version is
  overwritten (appended if missing). Used by publish/unpublish toggles and
  same-version edits; the version number does not move.
- *append*: a new entry ``current + 1`` is added and the template's
  ``version`` follows it. Used by new versions and restores.

Archived templates stay archived. In-place edits are accepted and keep the
ARCHIVED status; publishing, new versions and restores are rejected with
``LifecyclePolicyError``.

Every schema written to the ledger goes through ``_persisted`` first, so no
editor-only key reaches a stored version and ``sections`` always matches the
stored schema.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from emr_templates.config import get_settings
from emr_templates.errors import LifecyclePolicyError
from emr_templates.schemas.template import (
    Template,
    TemplateCreateRequest,
    TemplateStatus,
    TemplateVersion,
    VersionCreateRequest,
)
from emr_templates.utils.normalization import derive_section_codes, strip_editor_fields

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def _persisted(schema_json: Any) -> Tuple[dict, List[str]]:
    """Ledger form of a schema: editor-only keys dropped, section codes recomputed."""
    persisted = strip_editor_fields(schema_json if isinstance(schema_json, dict) else {})
    return persisted, derive_section_codes(persisted)


class TemplateLifecycleService:
    """Pure transitions over ``Template`` records; inputs are never mutated."""

    @staticmethod
    def create_template(
        request: TemplateCreateRequest,
        author: Optional[str] = None,
        template_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Template:
        """New template at version 1 with a single ledger entry."""
        now = now or _utcnow()
        status = TemplateStatus.PUBLISHED if request.publish else TemplateStatus.DRAFT
        schema_json, sections = _persisted(request.schema_json)
        entry = TemplateVersion(
            id=_new_id(),
            v=1,
            status=status,
            note=request.note or "Initial version",
            created_at=now,
            created_by=author,
            schema_json=schema_json,
            sections=sections,
        )
        template = Template(
            id=template_id or _new_id(),
            name=request.name.strip(),
            description=request.description,
            dept_code=request.dept_code,
            record_type_code=request.record_type_code,
            tags=list(request.tags),
            premium=request.premium,
            restricted=request.restricted,
            is_default=request.is_default,
            is_active=request.is_active,
            status=status,
            version=1,
            updated_at=now,
            updated_by=author,
            versions=[entry],
        )
        logger.info("Created template %s (%s) as v1 %s", template.id, template.name, status.value)
        return template

    @staticmethod
    def set_published(
        template: Template,
        publish: bool,
        author: Optional[str] = None,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Template:
        """Publish or unpublish the current version in place."""
        if template.status == TemplateStatus.ARCHIVED:
            raise LifecyclePolicyError("Archived templates cannot be published")
        now = now or _utcnow()
        status = TemplateStatus.PUBLISHED if publish else TemplateStatus.DRAFT
        current = template.current_entry
        entry = TemplateVersion(
            id=current.id if current else _new_id(),
            v=template.version,
            status=status,
            note=note or ("Published" if publish else "Unpublished"),
            created_at=now,
            created_by=author,
            schema_json=current.schema_json if current else {},
            sections=list(current.sections) if current else [],
        )
        logger.info("Template %s v%d -> %s", template.id, template.version, status.value)
        return template.model_copy(update={
            "status": status,
            "updated_at": now,
            "updated_by": author,
            "versions": _replace_entry(template.versions, entry),
        })

    @staticmethod
    def toggle_publish(
        template: Template,
        author: Optional[str] = None,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Template:
        """Draft -> Published or Published -> Draft; version number unchanged."""
        publish = template.status != TemplateStatus.PUBLISHED
        return TemplateLifecycleService.set_published(template, publish, author, note, now)

    @staticmethod
    def save_version(
        template: Template,
        request: VersionCreateRequest,
        author: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Template:
        """Record a save either in place (``keep_same_version``) or as a new version."""
        if request.restore_from_version is not None:
            return TemplateLifecycleService.restore_version(
                template, request.restore_from_version, author, now
            )
        if template.status == TemplateStatus.ARCHIVED:
            if request.publish:
                raise LifecyclePolicyError("Archived templates cannot be published")
            if not request.keep_same_version:
                raise LifecyclePolicyError("Archived templates cannot take new versions")
        now = now or _utcnow()
        settings = get_settings()
        schema_json, sections = _persisted(request.schema_json)

        if request.keep_same_version:
            status = TemplateStatus.PUBLISHED if request.publish else template.status
            entry = TemplateVersion(
                id=template.current_entry.id if template.current_entry else _new_id(),
                v=template.version,
                status=status,
                note=settings.edit_in_place_note,
                created_at=now,
                created_by=author,
                schema_json=schema_json,
                sections=sections,
            )
            versions = _replace_entry(template.versions, entry)
            version = template.version
        else:
            status = TemplateStatus.PUBLISHED if request.publish else TemplateStatus.DRAFT
            version = _next_version(template)
            entry = TemplateVersion(
                id=_new_id(),
                v=version,
                status=status,
                note=request.note or f"Version {version}",
                created_at=now,
                created_by=author,
                schema_json=schema_json,
                sections=sections,
            )
            versions = list(template.versions) + [entry]

        logger.info(
            "Template %s saved as v%d %s (%s)",
            template.id, version, status.value, "in place" if request.keep_same_version else "new version",
        )
        return template.model_copy(update={
            "status": status,
            "version": version,
            "updated_at": now,
            "updated_by": author,
            "versions": versions,
        })

    @staticmethod
    def restore_request(template: Template, version_number: int) -> VersionCreateRequest:
        """Version-create request that re-records ``version_number`` as a new draft."""
        if template.status == TemplateStatus.ARCHIVED:
            raise LifecyclePolicyError("Archived templates cannot be restored")
        source = template.get_version(version_number)
        if source is None:
            raise LifecyclePolicyError(f"Version v{version_number} not found in history")
        return VersionCreateRequest(
            schema_json=source.schema_json,
            sections=list(source.sections),
            publish=False,
            keep_same_version=False,
            note=get_settings().restore_note_template.format(version=version_number),
            restore_from_version=version_number,
        )

    @staticmethod
    def restore_version(
        template: Template,
        version_number: int,
        author: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Template:
        """Append a new draft version copied from ``version_number``; never reuses that number."""
        request = TemplateLifecycleService.restore_request(template, version_number)
        now = now or _utcnow()
        schema_json, sections = _persisted(request.schema_json)
        version = _next_version(template)
        entry = TemplateVersion(
            id=_new_id(),
            v=version,
            status=TemplateStatus.DRAFT,
            note=request.note,
            created_at=now,
            created_by=author,
            schema_json=schema_json,
            sections=sections,
        )
        logger.info("Template %s restored from v%d as v%d", template.id, version_number, version)
        return template.model_copy(update={
            "status": TemplateStatus.DRAFT,
            "version": version,
            "updated_at": now,
            "updated_by": author,
            "versions": list(template.versions) + [entry],
        })

    @staticmethod
    def archive(
        template: Template,
        author: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Template:
        """Soft delete: mark ARCHIVED and inactive; the ledger is left alone."""
        now = now or _utcnow()
        logger.info("Template %s archived (%s)", template.id, get_settings().archive_note)
        return template.model_copy(update={
            "status": TemplateStatus.ARCHIVED,
            "is_active": False,
            "updated_at": now,
            "updated_by": author,
        })


def _next_version(template: Template) -> int:
    highest = max((entry.v for entry in template.versions), default=0)
    return max(template.version, highest) + 1


def _replace_entry(versions: List[TemplateVersion], entry: TemplateVersion) -> List[TemplateVersion]:
    out = list(versions)
    for i, existing in enumerate(out):
        if existing.v == entry.v:
            out[i] = entry
            return out
    out.append(entry)
    return out
