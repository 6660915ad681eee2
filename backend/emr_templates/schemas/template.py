"""Template, version ledger and persistence request schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TemplateStatus(str, Enum):
    """Template lifecycle states."""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class TemplateVersion(BaseModel):
    """One entry of a template's version ledger."""
    id: str
    v: int = Field(..., ge=1, description="Version number")
    status: TemplateStatus
    note: str = ""
    created_at: datetime
    created_by: Optional[str] = None
    schema_json: Dict[str, Any] = Field(default_factory=dict, description="Persisted schema snapshot")
    sections: List[str] = Field(default_factory=list)


class Template(BaseModel):
    """A versioned, department/record-type scoped documentation form."""
    id: str
    name: str
    description: Optional[str] = None
    dept_code: str
    record_type_code: str
    tags: List[str] = Field(default_factory=list)
    premium: bool = False
    restricted: bool = False
    is_default: bool = False
    is_active: bool = True
    status: TemplateStatus = TemplateStatus.DRAFT
    version: int = Field(1, ge=1)
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    versions: List[TemplateVersion] = Field(default_factory=list)

    def get_version(self, v: int) -> Optional[TemplateVersion]:
        """Ledger entry for version ``v``, if recorded."""
        for entry in self.versions:
            if entry.v == v:
                return entry
        return None

    @property
    def current_entry(self) -> Optional[TemplateVersion]:
        return self.get_version(self.version)


class TemplateMetadata(BaseModel):
    """Header fields collected before the builder step."""
    name: str = ""
    dept_code: str = ""
    record_type_code: str = ""
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_active: bool = True
    premium: bool = False
    restricted: bool = False
    is_default: bool = False


class TemplateCreateRequest(TemplateMetadata):
    """Payload handed to the persistence collaborator to create a template."""
    schema_json: Dict[str, Any] = Field(default_factory=dict)
    sections: List[str] = Field(default_factory=list)
    publish: bool = False
    note: Optional[str] = None


class VersionCreateRequest(BaseModel):
    """Payload handed to the persistence collaborator to record a version."""
    schema_json: Dict[str, Any] = Field(default_factory=dict)
    sections: List[str] = Field(default_factory=list)
    publish: bool = False
    keep_same_version: Optional[bool] = None
    note: Optional[str] = None
    restore_from_version: Optional[int] = None


class RestoreRequest(BaseModel):
    """Restore a template from a ledger entry."""
    version: int = Field(..., ge=1)
