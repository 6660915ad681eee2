"""Async save path: validation, persisted-payload building and the persistence boundary."""

import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from emr_templates.errors import LifecyclePolicyError, SaveCancelled
from emr_templates.schemas.schema import Schema
from emr_templates.schemas.template import (
    Template,
    TemplateCreateRequest,
    TemplateMetadata,
    TemplateStatus,
    VersionCreateRequest,
)
from emr_templates.services.lifecycle import TemplateLifecycleService
from emr_templates.services.schema_reader import load_schema
from emr_templates.services.validation import validate_schema, validate_template
from emr_templates.utils.normalization import derive_section_codes, strip_editor_fields

logger = logging.getLogger(__name__)

SchemaInput = Union[Schema, dict, None]


class TemplateGateway(Protocol):
    """Persistence collaborator; implementations own transport, retries and storage."""

    async def create_template(self, request: TemplateCreateRequest) -> Any:
        ...

    async def create_version(self, template_id: str, request: VersionCreateRequest) -> Any:
        ...

    async def publish(self, template_id: str, publish: bool) -> Any:
        ...


class CancelToken:
    """Cooperative cancellation flag shared between a caller and an in-flight save."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SaveCancelled()


def _as_schema(schema: SchemaInput) -> Schema:
    return schema if isinstance(schema, Schema) else load_schema(schema)


def build_persisted_schema(schema: SchemaInput) -> dict:
    """Schema as handed to persistence: plain JSON without editor-only keys."""
    return strip_editor_fields(_as_schema(schema))


def build_template_create_request(
    metadata: TemplateMetadata,
    schema: SchemaInput,
    publish: bool = False,
    note: Optional[str] = None,
) -> TemplateCreateRequest:
    persisted = build_persisted_schema(schema)
    return TemplateCreateRequest(
        **metadata.model_dump(),
        schema_json=persisted,
        sections=derive_section_codes(persisted),
        publish=publish,
        note=note,
    )


def build_version_request(
    schema: SchemaInput,
    publish: bool = False,
    keep_same_version: Optional[bool] = None,
    note: Optional[str] = None,
) -> VersionCreateRequest:
    persisted = build_persisted_schema(schema)
    return VersionCreateRequest(
        schema_json=persisted,
        sections=derive_section_codes(persisted),
        publish=publish,
        keep_same_version=keep_same_version,
        note=note,
    )


class TemplateSaveService:
    """Validates and normalizes builder output, then hands it to a ``TemplateGateway``.

    A cancelled save (through the ``CancelToken`` or a ``SaveCancelled`` raised
    by the gateway) resolves to ``None``. Every other gateway error reaches the
    caller unchanged.
    """

    def __init__(self, gateway: TemplateGateway):
        self.gateway = gateway

    async def _send(
        self,
        token: Optional[CancelToken],
        call: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Any:
        try:
            if token is not None:
                token.raise_if_cancelled()
            return await call(*args)
        except SaveCancelled:
            logger.info("Save cancelled before %s completed", getattr(call, "__name__", call))
            return None

    async def create(
        self,
        metadata: TemplateMetadata,
        schema: SchemaInput,
        publish: bool = False,
        note: Optional[str] = None,
        token: Optional[CancelToken] = None,
    ) -> Any:
        loaded = _as_schema(schema)
        validate_template(metadata, loaded)
        request = build_template_create_request(metadata, loaded, publish, note)
        logger.info("Creating template %r (publish=%s)", request.name, publish)
        return await self._send(token, self.gateway.create_template, request)

    async def save_version(
        self,
        template_id: str,
        schema: SchemaInput,
        publish: bool = False,
        keep_same_version: Optional[bool] = None,
        note: Optional[str] = None,
        token: Optional[CancelToken] = None,
    ) -> Any:
        loaded = _as_schema(schema)
        validate_schema(loaded)
        request = build_version_request(loaded, publish, keep_same_version, note)
        logger.info(
            "Saving template %s (publish=%s, keep_same_version=%s)", template_id, publish, keep_same_version
        )
        return await self._send(token, self.gateway.create_version, template_id, request)

    async def restore(
        self,
        template: Template,
        version_number: int,
        token: Optional[CancelToken] = None,
    ) -> Any:
        request = TemplateLifecycleService.restore_request(template, version_number)
        logger.info("Restoring template %s from v%d", template.id, version_number)
        return await self._send(token, self.gateway.create_version, template.id, request)

    async def toggle_publish(
        self,
        template: Template,
        token: Optional[CancelToken] = None,
    ) -> Any:
        if template.status == TemplateStatus.ARCHIVED:
            raise LifecyclePolicyError("Archived templates cannot be published")
        publish = template.status != TemplateStatus.PUBLISHED
        return await self._send(token, self.gateway.publish, template.id, publish)
