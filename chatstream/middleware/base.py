"""
Middleware pipeline.

A middleware is an async callable ``(context, call_next) -> result``. Stages
run in registration order on the way in and in reverse order on the way
out. A stage may change the context, replace the result, skip the rest of
the chain by not calling ``call_next``, or wrap the completion stream.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from ..cancellation.controller import AbortSignal
from ..models.chunks import Chunk
from ..models.requests import CompletionRequest, CompletionsResult, ModelDescriptor
from ..orchestration.errors import MiddlewareError

logger = logging.getLogger(__name__)

CallNext = Callable[[], Awaitable[Any]]
Middleware = Callable[["MiddlewareContext", CallNext], Awaitable[Any]]
CoreCall = Callable[["MiddlewareContext"], Awaitable[Any]]


@dataclass
class MiddlewareContext:
    """
    Shared state for one pass through the pipeline.

    ``params`` is the CompletionRequest for ``completions`` and a dict of
    keyword arguments for every other operation. The same object is handed
    to every stage, so changes made by one stage are seen by the next.
    """
    method_name: str
    params: Any
    provider_id: str
    model: Optional[ModelDescriptor] = None
    topic_id: Optional[str] = None
    signal: Optional[AbortSignal] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def request(self) -> Optional[CompletionRequest]:
        return self.params if isinstance(self.params, CompletionRequest) else None

    @property
    def request_id(self) -> Optional[str]:
        request = self.request
        if request is not None:
            return request.request_id
        return self.metadata.get("request_id")


def stage_name(stage: Any) -> str:
    name = getattr(stage, "name", None)
    if isinstance(name, str) and name:
        return name
    return getattr(stage, "__name__", type(stage).__name__)


class BaseMiddleware:
    """
    Convenience base for class-based stages.

    Subclasses override ``before`` (runs before delegation, may change the
    context) and/or ``wrap_stream`` (decorates the completion stream).
    Other results pass through untouched.
    """

    name: str = ""
    methods: Optional[Sequence[str]] = None

    def applies_to(self, context: MiddlewareContext) -> bool:
        return self.methods is None or context.method_name in self.methods

    async def before(self, context: MiddlewareContext) -> None:
        pass

    def wrap_stream(self, context: MiddlewareContext,
                    stream: AsyncIterator[Chunk]) -> AsyncIterator[Chunk]:
        return stream

    async def __call__(self, context: MiddlewareContext, call_next: CallNext) -> Any:
        if not self.applies_to(context):
            return await call_next()
        await self.before(context)
        result = await call_next()
        if isinstance(result, CompletionsResult):
            result.stream = self.wrap_stream(context, result.stream)
        return result


def compose(stages: Sequence[Middleware]) -> Callable[[MiddlewareContext, CoreCall], Awaitable[Any]]:
    """
    Fold ``stages`` around a core call.

    Returns:
        ``run(context, core)`` executing before-hooks A, B, C, the core, then
        after-hooks C, B, A
    """
    stages = list(stages)

    async def run(context: MiddlewareContext, core: CoreCall) -> Any:
        async def dispatch(index: int) -> Any:
            if index == len(stages):
                return await core(context)

            stage = stages[index]
            delegated = False

            async def call_next() -> Any:
                nonlocal delegated
                delegated = True
                return await dispatch(index + 1)

            try:
                return await stage(context, call_next)
            except Exception as e:
                if delegated or isinstance(e, MiddlewareError):
                    raise
                name = stage_name(stage)
                logger.debug(f"Middleware {name} failed before delegating: {e!r}")
                raise MiddlewareError(name, e) from e

        return await dispatch(0)

    return run


class MiddlewarePipeline:
    """Ordered list of stages executed around one provider operation."""

    def __init__(self, stages: Optional[Sequence[Middleware]] = None):
        self._stages: List[Middleware] = list(stages or [])

    def use(self, stage: Middleware) -> "MiddlewarePipeline":
        """Append a stage; returns the pipeline for chaining."""
        self._stages.append(stage)
        return self

    @property
    def stages(self) -> List[Middleware]:
        return list(self._stages)

    def names(self) -> List[str]:
        return [stage_name(stage) for stage in self._stages]

    async def execute(self, context: MiddlewareContext, core: CoreCall) -> Any:
        """Run the stages around ``core`` and return the outermost result."""
        return await compose(self._stages)(context, core)

    def __len__(self) -> int:
        return len(self._stages)
