"""Middleware pipeline and built-in stages."""

from .base import BaseMiddleware, MiddlewareContext, MiddlewarePipeline, compose
from .call_logging import LoggingMiddleware
from .prompt_suffix import PromptSuffixMiddleware, apply_prompt_suffix
from .redaction import ReasoningRedactionMiddleware, redact_reasoning
from .scrubbing import FieldScrubbingMiddleware, scrub_thought_signatures
from .thinking_tags import TagExtractor, ThinkingTagMiddleware, extract_thinking
from .tracing import TracingMiddleware

__all__ = [
    "BaseMiddleware",
    "MiddlewareContext",
    "MiddlewarePipeline",
    "compose",
    "LoggingMiddleware",
    "PromptSuffixMiddleware",
    "apply_prompt_suffix",
    "ReasoningRedactionMiddleware",
    "redact_reasoning",
    "FieldScrubbingMiddleware",
    "scrub_thought_signatures",
    "TagExtractor",
    "ThinkingTagMiddleware",
    "extract_thinking",
    "TracingMiddleware",
]
