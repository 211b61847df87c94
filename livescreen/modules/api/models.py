"""
Livescreen API data models.

These models define the request and response bodies of the HTTP API.
Module and manifest definitions are returned as plain dicts built by the
preview service.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from livescreen.modules.session import WorkspaceStatus

MODULE_ID_PATTERN = r"^[A-Za-z_$][\w$-]*$"


# Request Models (API Input)


class CreateSessionRequest(BaseModel):
    """Request to create a preview session."""

    source_path: Optional[str] = Field(
        None, description="Project directory copied into an isolated workspace"
    )
    workspace_root: Optional[str] = Field(
        None, description="Existing directory edited in place (not copied)"
    )
    watch: bool = Field(default=True, description="Watch the workspace for file changes")

    @model_validator(mode="after")
    def one_source_only(self):
        if self.source_path and self.workspace_root:
            raise ValueError("Give either source_path or workspace_root, not both")
        return self


class FileUpdateRequest(BaseModel):
    """New content for one screen file."""

    content: str = Field(..., description="Full file content")


class HotReloadRequest(BaseModel):
    """Request an immediate swap of one screen."""

    module_id: str = Field(..., description="Screen module id", pattern=MODULE_ID_PATTERN)
    debounce: bool = Field(
        default=False, description="Coalesce with other requests instead of swapping now"
    )


class InjectModuleRequest(BaseModel):
    """A brand-new screen definition that does not exist on disk."""

    module_id: str = Field(..., description="Module id for the new screen", pattern=MODULE_ID_PATTERN)
    code: str = Field(..., description="Component source (typed source or plain script)", min_length=1)
    registry_key: Optional[str] = Field(
        None, description="Registry key override; defaults to the identity mapper"
    )

    @field_validator("registry_key")
    @classmethod
    def validate_registry_key(cls, v):
        if v is not None and not re.match(r"^[a-z0-9]+(-[a-z0-9]+)*$", v):
            raise ValueError(f"Registry key must be kebab-case: {v}")
        return v


class NavigationUpdateRequest(BaseModel):
    """Navigation structure pushed to live previews."""

    config: Dict[str, Any] = Field(..., description="Navigation configuration")


# Response Models (API Output)


class SessionResponse(BaseModel):
    """A preview session."""

    session_id: str
    workspace_path: str
    source_path: Optional[str] = None
    status: WorkspaceStatus
    created_at: datetime


class SwapResultResponse(BaseModel):
    session_id: str
    module_id: str
    version: Optional[int] = None
    applied: bool
    registry_key: Optional[str] = None
    fingerprint: Optional[str] = None
    superseded: bool = False
    scheduled: bool = False
    unchanged: bool = False
    error: Optional[str] = None


class ChangedModulesResponse(BaseModel):
    session_id: str
    changed: List[str] = Field(default_factory=list, description="Screens changed since the last full load")


class ApplyChangesResponse(BaseModel):
    session_id: str
    results: List[SwapResultResponse] = Field(default_factory=list)


class InjectionResponse(BaseModel):
    session_id: str
    module_id: str
    registry_key: str
    version: int
    fingerprint: str
    binding: Optional[str] = None


class CleanupResponse(BaseModel):
    removed: List[str] = Field(default_factory=list)


class CacheEvictionResponse(BaseModel):
    session_id: str
    evicted: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    timestamp: datetime
