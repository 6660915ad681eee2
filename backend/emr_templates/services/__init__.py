"""Service layer for business logic."""

from emr_templates.services.lifecycle import TemplateLifecycleService
from emr_templates.services.save import CancelToken, TemplateGateway, TemplateSaveService

__all__ = [
    "TemplateLifecycleService",
    "CancelToken",
    "TemplateGateway",
    "TemplateSaveService",
]
