"""
Per-topic span bookkeeping.

Each topic with traced work gets a root span; request spans hang off it (or
off whichever span is open on top of the topic's stack). When the topic's
queue goes idle, ``finalize_topic`` closes whatever is still open.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.normalization.errors import error_message
from ..models.usage import TokenUsage
from .sink import NullTraceSink, TraceSink
from .span import Span, SpanStatus

logger = logging.getLogger(__name__)

TOPIC_SPAN_PREFIX = "topic:"


@dataclass
class _TopicTrace:
    root: Span
    open_spans: List[Span] = field(default_factory=list)


class SpanManager:
    """
    Owns the span stacks of every traced topic.

    All methods are synchronous. Sink failures are logged and never reach
    the caller.
    """

    def __init__(self, sink: Optional[TraceSink] = None):
        self.sink = sink if sink is not None else NullTraceSink()
        self._topics: Dict[str, _TopicTrace] = {}

    # Span lifecycle

    def start_span(self, topic_id: str, name: str,
                   attributes: Optional[Dict[str, Any]] = None,
                   parent_id: Optional[str] = None) -> Span:
        """
        Open a span in ``topic_id``'s trace.

        The parent defaults to the innermost open span of the topic, or the
        topic root when none is open.
        """
        trace = self._topics.get(topic_id)
        if trace is None:
            trace = _TopicTrace(root=Span(name=f"{TOPIC_SPAN_PREFIX}{topic_id}", topic_id=topic_id))
            self._topics[topic_id] = trace
            logger.debug(f"Started trace for topic {topic_id} root={trace.root.id}")

        if parent_id is None:
            parent_id = trace.open_spans[-1].id if trace.open_spans else trace.root.id

        span = Span(name=name, topic_id=topic_id, parent_id=parent_id, attributes=dict(attributes or {}))
        trace.open_spans.append(span)
        return span

    def end_span(self, span: Span, error: Optional[BaseException] = None,
                 outputs: Any = None) -> bool:
        """
        End ``span`` once and hand it to the sink.

        Returns:
            False if the span had already ended
        """
        if error is not None:
            ended = span.end(SpanStatus.ERROR, error_message(error))
        else:
            ended = span.end(SpanStatus.OK)
        if not ended:
            return False

        if outputs is not None:
            span.set_attribute("outputs", outputs)
        trace = self._topics.get(span.topic_id)
        if trace is not None and span in trace.open_spans:
            trace.open_spans.remove(span)
        self._sink_call("save_entity", span)
        return True

    def finalize_topic(self, topic_id: str) -> int:
        """
        End every open span of the topic, innermost first, then its root.

        Registered as the topic queue's idle callback.

        Returns:
            Number of spans ended, root included
        """
        trace = self._topics.pop(topic_id, None)
        if trace is None:
            return 0
        ended = 0
        for span in reversed(list(trace.open_spans)):
            if span.end(SpanStatus.UNSET, "finalized while open"):
                self._sink_call("save_entity", span)
                ended += 1
        trace.open_spans.clear()
        if trace.root.end(SpanStatus.OK):
            self._sink_call("save_entity", trace.root)
            ended += 1
        logger.debug(f"Finalized trace for topic {topic_id}: {ended} span(s) ended")
        return ended

    def finalize_all(self) -> None:
        for topic_id in list(self._topics):
            self.finalize_topic(topic_id)

    # Reporting

    def report_usage(self, span: Span, usage: TokenUsage) -> None:
        self._sink_call("token_usage", span.id, usage)

    def report_stream(self, span: Span, model_name: Optional[str],
                      transcript: str, raw_message: Any) -> None:
        self._sink_call("add_stream_message", span.id, model_name, transcript, raw_message)

    # Queries

    def root_span(self, topic_id: str) -> Optional[Span]:
        trace = self._topics.get(topic_id)
        return trace.root if trace is not None else None

    def open_spans(self, topic_id: str) -> List[Span]:
        trace = self._topics.get(topic_id)
        return list(trace.open_spans) if trace is not None else []

    def has_topic(self, topic_id: str) -> bool:
        return topic_id in self._topics

    def _sink_call(self, method: str, *args) -> None:
        try:
            getattr(self.sink, method)(*args)
        except Exception as e:
            logger.warning(f"Trace sink {type(self.sink).__name__}.{method} failed: {e!r}")
