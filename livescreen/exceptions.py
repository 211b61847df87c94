"""
Livescreen error taxonomy.

Not-found errors map to 404 responses, infrastructure errors to hard 503
responses. Transform and evaluation errors are recovered inside the
pipeline (pattern fallback, placeholder component) and only reach the API
when a caller explicitly asks for them.
"""

from datetime import UTC, datetime
from typing import Any, Dict, Optional


class LivescreenError(Exception):
    """Base class for all livescreen errors."""

    status_code = 500
    error_code = "internal_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context
        self.timestamp = datetime.now(UTC).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Structured error body for API responses."""
        body = {
            "error": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        body.update({k: v for k, v in self.context.items() if v is not None})
        return body


class SessionNotFoundError(LivescreenError):
    status_code = 404
    error_code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", session_id=session_id)


class UnknownModuleError(LivescreenError):
    status_code = 404
    error_code = "module_not_found"

    def __init__(self, module_id: str, session_id: Optional[str] = None):
        super().__init__(
            f"Module not found: {module_id}", module_id=module_id, session_id=session_id
        )


class TransformError(LivescreenError):
    """Both transform strategies failed to produce valid script."""

    status_code = 422
    error_code = "transform_failed"


class EvaluationError(LivescreenError):
    """Sandbox threw, timed out, or produced no usable binding."""

    status_code = 422
    error_code = "evaluation_failed"


class InfrastructureError(LivescreenError):
    """Filesystem, compiler binary, or backing store unavailable. Not retried."""

    status_code = 503
    error_code = "infrastructure_failure"
