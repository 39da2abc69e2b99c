"""Main orchestrator for streaming completions.

The orchestrator ties the layers together for each request:
1. Creates the request's abort controller (with its timeout) and registers it
2. Applies the caller's message filter
3. Runs the middleware pipeline around the provider adapter
4. Drains the resulting chunk stream into the caller's callback
5. Turns any terminal failure into exactly one error chunk and returns an
   outcome instead of raising
"""

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ..cancellation.controller import AbortReason, StreamAbortController
from ..cancellation.registry import AbortRegistry
from ..config.constants import DEFAULT_REASONING_MARKER, DEFAULT_TIMEOUT_MS
from ..config.settings import RuntimeSettings, load_settings
from ..core.normalization.errors import serialize_error
from ..middleware.base import MiddlewareContext, MiddlewarePipeline
from ..middleware.call_logging import LoggingMiddleware
from ..middleware.prompt_suffix import PromptSuffixMiddleware
from ..middleware.redaction import ReasoningRedactionMiddleware
from ..middleware.scrubbing import FieldScrubbingMiddleware
from ..middleware.thinking_tags import ThinkingTagMiddleware
from ..middleware.tracing import TracingMiddleware
from ..models.chunks import (
    BlockCompleteChunk,
    Chunk,
    ErrorChunk,
    ReasoningDeltaChunk,
    TextDeltaChunk,
    UsageUpdateChunk,
)
from ..models.conversation_types import ConversationMessage
from ..models.requests import (
    CompletionOutcome,
    CompletionRequest,
    CompletionsResult,
    ModelDescriptor,
    OutcomeStatus,
)
from ..models.usage import TokenUsage
from ..observability.logging import configure_logging
from ..providers.base import (
    CHECK_API_KEY,
    COMPLETIONS,
    EMBEDDINGS,
    GENERATE_IMAGE,
    LIST_MODELS,
    SUMMARIZE,
    TRANSLATE,
    ApiKeyCheck,
    ProviderAdapter,
    ProviderError,
    deliver,
)
from ..providers.registry import ProviderRegistry
from ..queue.topic_queue import TopicQueueRegistry
from ..tracing.manager import SpanManager
from ..tracing.sink import TraceSink
from .errors import OrchestratorError, abort_error
from .tool_confirmations import ToolConfirmationRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

ABORT_STATUS = {
    AbortReason.TIMEOUT: OutcomeStatus.TIMEOUT,
    AbortReason.USER_CANCELLED: OutcomeStatus.CANCELLED,
}


def default_pipeline(spans: SpanManager, reasoning_marker: str = DEFAULT_REASONING_MARKER) -> MiddlewarePipeline:
    """Stages in registration order; stream wrappers apply innermost first."""
    return MiddlewarePipeline([
        LoggingMiddleware(),
        TracingMiddleware(spans),
        FieldScrubbingMiddleware(),
        PromptSuffixMiddleware(),
        ReasoningRedactionMiddleware(reasoning_marker),
        ThinkingTagMiddleware(),
    ])


@dataclass
class TopicStatus:
    """Queue state of a topic, for busy indicators."""
    topic_id: str
    pending: int
    in_flight: int

    @property
    def busy(self) -> bool:
        return self.pending > 0 or self.in_flight > 0


@dataclass
class _StreamState:
    text: List[str] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    chunk_count: int = 0
    completed: bool = False
    error: Optional[Dict[str, Any]] = None

    def observe(self, chunk: Chunk) -> None:
        self.chunk_count += 1
        if isinstance(chunk, TextDeltaChunk):
            self.text.append(chunk.text)
        elif isinstance(chunk, ReasoningDeltaChunk):
            self.reasoning.append(chunk.text)
        elif isinstance(chunk, UsageUpdateChunk):
            self.usage = self.usage.merge_max(chunk.usage)
        elif isinstance(chunk, BlockCompleteChunk):
            self.completed = True
            if chunk.usage is not None:
                self.usage = self.usage.merge_max(chunk.usage)
        elif isinstance(chunk, ErrorChunk):
            self.error = chunk.error

    def outcome(self, request_id: str, status: OutcomeStatus) -> CompletionOutcome:
        return CompletionOutcome(
            request_id=request_id,
            status=status,
            text="".join(self.text),
            reasoning="".join(self.reasoning),
            usage=self.usage,
            chunk_count=self.chunk_count,
            error=self.error,
        )


class Orchestrator:
    """
    Entry point for running requests against providers.

    Args:
        providers: Adapter registry
        queues: Per-topic queues; their idle callback finalizes the topic's trace
        spans: Span manager (a fresh one with a null sink when omitted)
        pipeline: Middleware stages (``default_pipeline`` when omitted)
        aborts: Live controllers by request id
        confirmations: Pending tool confirmations
        default_timeout_ms: Timeout for requests that don't set their own;
            0 disables it
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        queues: TopicQueueRegistry,
        spans: Optional[SpanManager] = None,
        pipeline: Optional[MiddlewarePipeline] = None,
        aborts: Optional[AbortRegistry] = None,
        confirmations: Optional[ToolConfirmationRegistry] = None,
        default_timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ):
        self.providers = providers
        self.queues = queues
        self.spans = spans if spans is not None else SpanManager()
        self.pipeline = pipeline if pipeline is not None else default_pipeline(self.spans)
        self.aborts = aborts if aborts is not None else AbortRegistry()
        self.confirmations = confirmations if confirmations is not None else ToolConfirmationRegistry()
        self.default_timeout_ms = default_timeout_ms
        self._request_topics: Dict[str, Optional[str]] = {}
        self._active_calls: Dict[str, int] = {}
        self.queues.add_idle_callback(self._on_topic_idle)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[RuntimeSettings] = None,
        sink: Optional[TraceSink] = None,
        providers: Optional[ProviderRegistry] = None,
    ) -> "Orchestrator":
        """
        Build an orchestrator from RuntimeSettings (loaded from the environment when omitted).

        Raises:
            ValueError: If the topic concurrency was never configured
        """
        settings = settings if settings is not None else load_settings()
        concurrency = settings.queue_concurrency()
        configure_logging(settings.log_level)
        spans = SpanManager(sink)
        return cls(
            providers=providers if providers is not None else ProviderRegistry.from_settings(settings),
            queues=TopicQueueRegistry(concurrency),
            spans=spans,
            pipeline=default_pipeline(spans, settings.reasoning_marker),
            default_timeout_ms=settings.default_timeout_ms,
        )

    # Completions

    async def completions(
        self,
        request: CompletionRequest,
        topic_id: Optional[str] = None,
        timeout_ms: Optional[float] = None,
    ) -> CompletionOutcome:
        """
        Run one streaming completion to the end.

        Every chunk goes to ``request.on_chunk`` in order. Failures, timeouts
        and cancellations are reported as a single final ErrorChunk and in
        the returned outcome; this method does not raise for them.
        """
        timeout_ms = self.default_timeout_ms if timeout_ms is None else timeout_ms
        controller = StreamAbortController(timeout_ms)
        self.aborts.register(request.request_id, controller)
        self._request_topics[request.request_id] = topic_id
        self._enter_topic(topic_id)
        state = _StreamState()

        try:
            task = asyncio.ensure_future(self._run_completion(request, topic_id, controller, state))
            controller.on_abort(lambda reason: task.cancel())
            try:
                await task
            except asyncio.CancelledError:
                if not controller.aborted:
                    raise
                status = ABORT_STATUS[controller.reason]
                await self._emit_error(request, state, abort_error(request.request_id, controller.reason, timeout_ms))
            except Exception as e:
                status = OutcomeStatus.ERROR
                await self._emit_error(request, state, e)
            else:
                if state.error is not None:
                    status = OutcomeStatus.ERROR
                elif controller.aborted and not state.completed:
                    status = ABORT_STATUS[controller.reason]
                    await self._emit_error(request, state, abort_error(request.request_id, controller.reason, timeout_ms))
                else:
                    status = OutcomeStatus.SUCCESS
        finally:
            controller.cancel_timeout()
            self.aborts.discard(request.request_id, controller)
            self._request_topics.pop(request.request_id, None)
            self._leave_topic(topic_id)

        outcome = state.outcome(request.request_id, status)
        if outcome.ok:
            logger.debug(f"Request {request.request_id} finished: {outcome.chunk_count} chunk(s)")
        else:
            logger.warning(f"Request {request.request_id} ended with status={status.value}: "
                           f"{(outcome.error or {}).get('message', '')}")
        return outcome

    def submit(
        self,
        topic_id: str,
        request: CompletionRequest,
        timeout_ms: Optional[float] = None,
    ) -> "asyncio.Future[CompletionOutcome]":
        """
        Queue a completion on its topic.

        The timeout starts when the request leaves the queue, not when it is
        submitted.
        """
        return self.queues.add(topic_id, lambda: self.completions(request, topic_id, timeout_ms))

    async def _run_completion(
        self,
        request: CompletionRequest,
        topic_id: Optional[str],
        controller: StreamAbortController,
        state: _StreamState,
    ) -> None:
        if request.on_filter_messages is not None:
            filtered = request.on_filter_messages(list(request.messages))
            if inspect.isawaitable(filtered):
                filtered = await filtered
            request = request.model_copy(update={"messages": list(filtered)})

        adapter = self._adapter_for(request.model.provider_id, COMPLETIONS)
        context = MiddlewareContext(
            method_name=COMPLETIONS,
            params=request,
            provider_id=request.model.provider_id,
            model=request.model,
            topic_id=topic_id,
            signal=controller.signal,
            metadata={"request_id": request.request_id},
        )

        async def core(ctx: MiddlewareContext) -> CompletionsResult:
            return adapter.open_completions(ctx.params, ctx.signal)

        result = await self.pipeline.execute(context, core)
        if not isinstance(result, CompletionsResult):
            raise OrchestratorError(
                f"completions pipeline returned {type(result).__name__}, expected CompletionsResult"
            )

        stream = result.stream
        try:
            async for chunk in stream:
                state.observe(chunk)
                await deliver(request.on_chunk, chunk)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _emit_error(self, request: CompletionRequest, state: _StreamState, error: BaseException) -> None:
        if state.error is not None:
            # The stream already carried its terminal error chunk
            return
        chunk = ErrorChunk(error=serialize_error(error))
        state.observe(chunk)
        try:
            await deliver(request.on_chunk, chunk)
        except Exception:
            logger.exception(f"on_chunk failed while delivering the error chunk for {request.request_id}")

    # Trace finalization

    def _enter_topic(self, topic_id: Optional[str]) -> None:
        if topic_id:
            self._active_calls[topic_id] = self._active_calls.get(topic_id, 0) + 1

    def _leave_topic(self, topic_id: Optional[str]) -> None:
        """Finalize the topic's trace once its last running call is done and its queue is idle."""
        if not topic_id:
            return
        remaining = self._active_calls.get(topic_id, 0) - 1
        if remaining > 0:
            self._active_calls[topic_id] = remaining
            return
        self._active_calls.pop(topic_id, None)
        if not self.queues.is_busy(topic_id):
            self.spans.finalize_topic(topic_id)

    def _on_topic_idle(self, topic_id: str) -> None:
        # Direct calls still running on the topic finalize it when they finish
        if self._active_calls.get(topic_id, 0) == 0:
            self.spans.finalize_topic(topic_id)


    # Other capabilities

    def _adapter_for(self, provider_id: str, operation: str) -> ProviderAdapter:
        adapter = self.providers.get(provider_id)
        if operation not in adapter.capabilities():
            raise ProviderError.unsupported(provider_id, operation)
        return adapter

    async def call(
        self,
        provider_id: str,
        operation: str,
        topic_id: Optional[str] = None,
        model: Optional[ModelDescriptor] = None,
        timeout_ms: Optional[float] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Invoke a capability through the middleware pipeline.

        Raises:
            ProviderError: If the provider lacks the capability or the call fails
            RequestTimeoutError: If the call outlives its timeout
        """
        adapter = self._adapter_for(provider_id, operation)
        operation_fn = adapter.capabilities()[operation]
        timeout_ms = self.default_timeout_ms if timeout_ms is None else timeout_ms
        call_id = uuid.uuid4().hex
        controller = StreamAbortController(timeout_ms)
        context = MiddlewareContext(
            method_name=operation,
            params=dict(kwargs),
            provider_id=provider_id,
            model=model,
            topic_id=topic_id,
            signal=controller.signal,
            metadata={"request_id": call_id},
        )

        async def core(ctx: MiddlewareContext) -> Any:
            return await operation_fn(**ctx.params)

        self._enter_topic(topic_id)
        try:
            return await self._run_controlled(
                call_id, controller, lambda: self.pipeline.execute(context, core), timeout_ms
            )
        finally:
            self._leave_topic(topic_id)

    async def _run_controlled(self, call_id: str, controller: StreamAbortController,
                              factory: Callable[[], Awaitable[T]], timeout_ms: float) -> T:
        task = asyncio.ensure_future(factory())
        controller.on_abort(lambda reason: task.cancel())
        try:
            return await task
        except asyncio.CancelledError:
            if not controller.aborted:
                raise
            raise abort_error(call_id, controller.reason, timeout_ms)
        finally:
            controller.cancel_timeout()

    async def generate_image(self, provider_id: str, prompt: str, model: str, **kwargs: Any) -> List[str]:
        return await self.call(provider_id, GENERATE_IMAGE, prompt=prompt, model=model, **kwargs)

    async def embeddings(self, provider_id: str, texts: List[str], model: str, **kwargs: Any) -> List[List[float]]:
        return await self.call(provider_id, EMBEDDINGS, texts=texts, model=model, **kwargs)

    async def translate(self, provider_id: str, text: str, target_language: str, model: str) -> str:
        return await self.call(provider_id, TRANSLATE, text=text, target_language=target_language, model=model)

    async def summarize(self, provider_id: str, messages: List[ConversationMessage], model: str,
                        topic_id: Optional[str] = None) -> str:
        return await self.call(provider_id, SUMMARIZE, topic_id=topic_id, messages=messages, model=model)

    async def list_models(self, provider_id: str) -> List[ModelDescriptor]:
        return await self.call(provider_id, LIST_MODELS)

    async def check_api_key(self, provider_id: str, model: str) -> ApiKeyCheck:
        return await self.call(provider_id, CHECK_API_KEY, model=model)

    # Cancellation and topic state

    def cancel(self, request_id: str) -> bool:
        """Abort an in-flight request. Returns False if it is unknown or already aborted."""
        return self.aborts.abort(request_id, AbortReason.USER_CANCELLED)

    def cancel_topic(self, topic_id: str) -> int:
        """
        Drop the topic's pending requests and abort its in-flight ones.

        Returns:
            Number of requests dropped or aborted
        """
        dropped = self.queues.clear(topic_id)
        aborted = 0
        for request_id, request_topic in list(self._request_topics.items()):
            if request_topic == topic_id and self.cancel(request_id):
                aborted += 1
        return dropped + aborted

    async def wait_for_topic(self, topic_id: str) -> None:
        await self.queues.wait_for_topic_queue(topic_id)

    def topic_status(self, topic_id: str) -> TopicStatus:
        pending, in_flight = self.queues.counts(topic_id)
        return TopicStatus(topic_id=topic_id, pending=pending, in_flight=in_flight)

    # Tool confirmations

    def request_tool_confirmation(self, tool_call_id: str) -> asyncio.Future:
        return self.confirmations.request(tool_call_id)

    async def wait_for_tool_confirmation(self, tool_call_id: str, timeout: Optional[float] = None) -> bool:
        return await self.confirmations.wait(tool_call_id, timeout)

    def confirm_tool(self, tool_call_id: str, approved: bool = True) -> bool:
        return self.confirmations.resolve(tool_call_id, approved)

    def clear_tool_confirmations(self) -> None:
        self.confirmations.clear_all()
