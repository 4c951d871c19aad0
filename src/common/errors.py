"""Error taxonomy for the publishing workflow.

Every error carries a machine-readable code, a human message and, where
relevant, the workflow step that produced it (enhancement, validation,
create, publish-site). ``http_status`` gives the HTTP-style status used when
the error is returned to a caller.
"""

from __future__ import annotations

from typing import Any

# Workflow sub-steps named in error responses
STEP_ENHANCEMENT = "enhancement"
STEP_VALIDATION = "validation"
STEP_CREATE = "create"
STEP_PUBLISH_SITE = "publish-site"
STEP_DELETE = "delete"
STEP_UNPUBLISH = "unpublish"


class WorkflowError(Exception):
    """Base class for all workflow errors."""

    code = "WORKFLOW_ERROR"
    http_status = 500
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        details: dict[str, Any] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.code,
            "code": self.code,
            "message": self.message,
        }
        if self.step:
            body["step"] = self.step
        if self.details:
            body["details"] = self.details
        return body


class Unauthenticated(WorkflowError):
    code = "UNAUTHENTICATED"
    http_status = 401


class Forbidden(WorkflowError):
    code = "FORBIDDEN"
    http_status = 403


class NotFound(WorkflowError):
    code = "NOT_FOUND"
    http_status = 404


class PreconditionFailed(WorkflowError):
    code = "PRECONDITION_FAILED"
    http_status = 404


class RemoteItemMissing(PreconditionFailed):
    """The platform no longer has the item a record points at."""

    code = "REMOTE_ITEM_MISSING"


class InvalidTransition(WorkflowError):
    code = "INVALID_TRANSITION"
    http_status = 400

    def __init__(self, kind: str, current: str, target: str, allowed: list[str] | None = None) -> None:
        allowed = allowed or []
        message = (
            f"Invalid {kind} status transition: {current} -> {target}. "
            f"Valid transitions from {current}: {', '.join(allowed) or 'none'}"
        )
        super().__init__(
            message,
            details={"kind": kind, "current": current, "target": target, "allowed": allowed},
        )
        self.kind = kind
        self.current = current
        self.target = target


class InvalidState(WorkflowError):
    code = "INVALID_STATE"
    http_status = 400


class ValidationFailed(WorkflowError):
    code = "VALIDATION_FAILED"
    http_status = 400


class SchemaMismatch(WorkflowError):
    code = "SCHEMA_MISMATCH"
    http_status = 400


class UpstreamError(WorkflowError):
    """A remote API call failed. Safe to retry on explicit request."""

    code = "UPSTREAM_ERROR"
    http_status = 502
    retryable = True

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("upstream_status", status_code)


class UpstreamTimeout(UpstreamError):
    code = "UPSTREAM_TIMEOUT"


def error_response(exc: Exception) -> tuple[int, dict[str, Any]]:
    """Map an exception to an (http_status, body) pair for callers."""
    if isinstance(exc, WorkflowError):
        return exc.http_status, exc.to_dict()
    return 500, {
        "error": "INTERNAL_ERROR",
        "code": "INTERNAL_ERROR",
        "message": str(exc) or exc.__class__.__name__,
    }
