"""
API Module - Black Box Interface

Purpose: HTTP request and response models
Interface: Pydantic models used by the FastAPI routes
Hidden: Field validation rules

The API layer only orchestrates - it contains no business logic.
All logic is delegated to the engine and its modules.
"""

from .models import (
    ApplyChangesResponse,
    CacheEvictionResponse,
    ChangedModulesResponse,
    CleanupResponse,
    CreateSessionRequest,
    ErrorResponse,
    FileUpdateRequest,
    HotReloadRequest,
    InjectionResponse,
    InjectModuleRequest,
    NavigationUpdateRequest,
    SessionResponse,
    SwapResultResponse,
)

__all__ = [
    "ApplyChangesResponse",
    "CacheEvictionResponse",
    "ChangedModulesResponse",
    "CleanupResponse",
    "CreateSessionRequest",
    "ErrorResponse",
    "FileUpdateRequest",
    "HotReloadRequest",
    "InjectionResponse",
    "InjectModuleRequest",
    "NavigationUpdateRequest",
    "SessionResponse",
    "SwapResultResponse",
]
