"""Request/response bodies for the HTTP helpers."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from emr_templates.schemas.template import Template, TemplateMetadata, VersionCreateRequest


class NormalizeResponse(BaseModel):
    """Persisted form of a schema plus its section-code index."""
    schema_json: Dict[str, Any]
    sections: List[str]


class VisibilityRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schema_json: Optional[Dict[str, Any]] = Field(None, alias="schema")
    values: Dict[str, Any] = Field(default_factory=dict)


class PresetSummary(BaseModel):
    id: str
    label: str
    section_code: str


class PackApplyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schema_json: Dict[str, Any] = Field(..., alias="schema")
    focus_section_code: Optional[str] = None


class TemplateCreateBody(BaseModel):
    """Metadata and builder schema for a new template."""
    model_config = ConfigDict(populate_by_name=True)

    metadata: TemplateMetadata
    schema_json: Optional[Dict[str, Any]] = Field(None, alias="schema")
    publish: bool = False
    note: Optional[str] = None
    author: Optional[str] = None


class LifecycleRequest(BaseModel):
    """A template plus the arguments of the transition applied to it."""
    template: Template
    author: Optional[str] = None
    publish: Optional[bool] = Field(None, description="Explicit target for the publish action; toggles when omitted")
    version: Optional[int] = Field(None, ge=1, description="Version to restore from")
    save: Optional[VersionCreateRequest] = None
    note: Optional[str] = None
