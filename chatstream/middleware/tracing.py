"""Tracing stage: one span per pipeline call, under the topic's root span."""

from typing import Any

from ..models.requests import CompletionsResult
from ..tracing.handlers import handle_chunk_stream, handle_result
from ..tracing.manager import SpanManager
from .base import CallNext, MiddlewareContext


class TracingMiddleware:
    """
    Opens a span named ``<provider>.<method>`` for calls that belong to a
    topic. Completion streams are wrapped so the span ends when the stream
    does; other results end it right away.
    """

    name = "tracing"

    def __init__(self, spans: SpanManager):
        self.spans = spans

    async def __call__(self, context: MiddlewareContext, call_next: CallNext) -> Any:
        if not context.topic_id:
            return await call_next()

        model_name = context.model.display_name if context.model is not None else None
        span = self.spans.start_span(
            context.topic_id,
            f"{context.provider_id}.{context.method_name}",
            attributes={
                "provider": context.provider_id,
                "model": model_name,
                "request_id": context.request_id,
            },
        )
        context.metadata["span_id"] = span.id
        try:
            result = await call_next()
        except BaseException as e:
            self.spans.end_span(span, error=e)
            raise

        if isinstance(result, CompletionsResult):
            result.stream = handle_chunk_stream(result.stream, span, self.spans, model_name)
            return result
        return handle_result(result, span, self.spans, model_name)
