"""Orchestration-specific error definitions."""

from typing import Optional

from ..cancellation.controller import AbortReason


class OrchestratorError(Exception):
    """Base exception for orchestration errors."""
    pass


class RequestTimeoutError(OrchestratorError):
    """The request's abort signal fired with ``AbortReason.TIMEOUT``."""

    def __init__(self, request_id: str, timeout_ms: Optional[float] = None):
        self.request_id = request_id
        self.timeout_ms = timeout_ms
        message = f"Request {request_id} timed out"
        if timeout_ms:
            message += f" after {int(timeout_ms)} ms"
        super().__init__(message)


class UserCancelledError(OrchestratorError):
    """The request was aborted by the caller."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} was cancelled")


class MiddlewareError(OrchestratorError):
    """A middleware stage failed before handing control to the rest of the chain."""

    def __init__(self, stage_name: str, original_error: BaseException):
        self.stage_name = stage_name
        self.original_error = original_error
        super().__init__(f"Middleware '{stage_name}' failed: {original_error}")


def abort_error(request_id: str, reason: Optional[AbortReason],
                timeout_ms: Optional[float] = None) -> OrchestratorError:
    """Exception describing an aborted request."""
    if reason == AbortReason.TIMEOUT:
        return RequestTimeoutError(request_id, timeout_ms)
    return UserCancelledError(request_id)
