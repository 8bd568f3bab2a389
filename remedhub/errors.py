"""
Typed errors raised by the completion services.

Every error carries a machine-readable ``code`` and a ``context`` dict
(job id, entity, current status, attempted transition...) so the HTTP layer
can render a precise message without parsing strings.

    CompletionError
    +-- Unauthorized
    +-- NotFoundError
    +-- InvalidTransition
    +-- ValidationError

``StorageReleaseWarning`` is not an exception that reaches callers: photo
removal collects it and returns it alongside the successful result.
"""
from typing import Any, Dict, Optional


class CompletionError(Exception):
    code: str = "COMPLETION_ERROR"
    status_code: int = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "detail": self.message}
        for key, value in self.context.items():
            payload[key] = str(value) if not isinstance(value, (int, float, bool, list)) else value
        return payload


class Unauthorized(CompletionError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Unauthorized", **context: Any):
        super().__init__(message, **context)


class NotFoundError(CompletionError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any, **context: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id, **context)
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(CompletionError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(
        self,
        message: str,
        job_id: Any = None,
        current_status: Optional[str] = None,
        attempted: Optional[str] = None,
        **context: Any,
    ):
        super().__init__(message, job_id=job_id, current_status=current_status, attempted=attempted, **context)
        self.job_id = job_id
        self.current_status = current_status
        self.attempted = attempted


class ValidationError(CompletionError):
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, **context: Any):
        super().__init__(message, field=field, **context)
        self.field = field


class StorageReleaseWarning(Warning):
    code = "STORAGE_RELEASE_FAILED"

    def __init__(self, storage_path: str, reason: str):
        super().__init__(f"Failed to release storage object {storage_path}: {reason}")
        self.storage_path = storage_path
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {"warning": self.code, "storage_path": self.storage_path, "detail": self.reason}


def require_actor(actor: Any, **context: Any) -> Any:
    if actor is None or getattr(actor, "id", None) is None:
        raise Unauthorized("An authenticated user is required", **context)
    return actor
