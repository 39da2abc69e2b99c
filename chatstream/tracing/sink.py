"""Trace sinks: where finished spans, usage and stream transcripts go."""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from ..models.usage import TokenUsage
from .span import Span

logger = logging.getLogger(__name__)


class TraceSink(Protocol):
    """Protocol for trace sink implementations.

    Methods are synchronous so span bookkeeping never yields control
    halfway through an update.
    """

    def save_entity(self, entity: Span) -> None:
        """Persist a span (called when it ends)."""
        ...

    def token_usage(self, span_id: str, usage: TokenUsage) -> None:
        """Record the latest cumulative usage for a span."""
        ...

    def add_stream_message(self, span_id: str, model_name: Optional[str],
                           transcript: str, raw_message: Any) -> None:
        """Record the transcript accumulated so far for a streaming span."""
        ...


@dataclass
class StreamRecord:
    span_id: str
    model_name: Optional[str]
    transcript: str
    raw_message: Any


@dataclass
class InMemoryTraceSink:
    """Keeps everything in lists; used by tests and for local inspection."""
    entities: List[Span] = field(default_factory=list)
    usages: List[tuple] = field(default_factory=list)
    stream_messages: List[StreamRecord] = field(default_factory=list)

    def save_entity(self, entity: Span) -> None:
        self.entities.append(entity)

    def token_usage(self, span_id: str, usage: TokenUsage) -> None:
        self.usages.append((span_id, usage))

    def add_stream_message(self, span_id: str, model_name: Optional[str],
                           transcript: str, raw_message: Any) -> None:
        self.stream_messages.append(StreamRecord(span_id, model_name, transcript, raw_message))

    def spans_named(self, name: str) -> List[Span]:
        return [s for s in self.entities if s.name == name]

    def spans_for_topic(self, topic_id: str) -> List[Span]:
        return [s for s in self.entities if s.topic_id == topic_id]

    def usage_for(self, span_id: str) -> Optional[TokenUsage]:
        """Latest usage reported for a span."""
        latest = None
        for sid, usage in self.usages:
            if sid == span_id:
                latest = usage
        return latest

    def transcript_for(self, span_id: str) -> Optional[str]:
        latest = None
        for record in self.stream_messages:
            if record.span_id == span_id:
                latest = record.transcript
        return latest

    def clear(self) -> None:
        self.entities.clear()
        self.usages.clear()
        self.stream_messages.clear()


class LoggingTraceSink:
    """Writes trace data to the ``chatstream.tracing`` logger."""

    def __init__(self, level: int = logging.DEBUG, name: str = "chatstream.tracing"):
        self.level = level
        self.logger = logging.getLogger(name)

    def save_entity(self, entity: Span) -> None:
        if self.logger.isEnabledFor(self.level):
            duration = entity.duration_ms
            self.logger.log(
                self.level,
                f"[topic={entity.topic_id} span={entity.id} parent={entity.parent_id}] "
                f"{entity.name} status={entity.status.value}"
                + (f" duration_ms={int(duration)}" if duration is not None else "")
                + (f" message={entity.status_message}" if entity.status_message else ""),
            )

    def token_usage(self, span_id: str, usage: TokenUsage) -> None:
        self.logger.log(
            self.level,
            f"[span={span_id}] usage prompt={usage.prompt_tokens} "
            f"completion={usage.completion_tokens} total={usage.total_tokens}",
        )

    def add_stream_message(self, span_id: str, model_name: Optional[str],
                           transcript: str, raw_message: Any) -> None:
        self.logger.log(self.level, f"[span={span_id} model={model_name}] transcript_chars={len(transcript)}")


class NullTraceSink:
    """Discards everything."""

    def save_entity(self, entity: Span) -> None:
        pass

    def token_usage(self, span_id: str, usage: TokenUsage) -> None:
        pass

    def add_stream_message(self, span_id: str, model_name: Optional[str],
                           transcript: str, raw_message: Any) -> None:
        pass
