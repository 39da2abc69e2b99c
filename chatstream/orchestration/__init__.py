"""Request orchestration: completions, capability calls, topic state."""

from .errors import (
    MiddlewareError,
    OrchestratorError,
    RequestTimeoutError,
    UserCancelledError,
)
from .orchestrator import Orchestrator, TopicStatus, default_pipeline
from .tool_confirmations import ToolConfirmationRegistry

__all__ = [
    "Orchestrator",
    "TopicStatus",
    "default_pipeline",
    "OrchestratorError",
    "MiddlewareError",
    "RequestTimeoutError",
    "UserCancelledError",
    "ToolConfirmationRegistry",
]
