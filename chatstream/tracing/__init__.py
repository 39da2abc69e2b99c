"""Diagnostic spans, trace sinks and trace handlers."""

from .handlers import extract_usage, handle_chunk_stream, handle_message_stream, handle_result
from .manager import SpanManager
from .sink import InMemoryTraceSink, LoggingTraceSink, NullTraceSink, TraceSink
from .span import Span, SpanStatus

__all__ = [
    "Span",
    "SpanStatus",
    "SpanManager",
    "TraceSink",
    "InMemoryTraceSink",
    "LoggingTraceSink",
    "NullTraceSink",
    "extract_usage",
    "handle_result",
    "handle_message_stream",
    "handle_chunk_stream",
]
