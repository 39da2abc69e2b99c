"""Logging stage: start, duration and outcome of every pipeline call."""

import asyncio
import time
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from ..core.normalization.stringify import safe_stringify
from ..models.chunks import Chunk, ErrorChunk
from ..models.requests import CompletionsResult
from ..observability.logging import ProviderLogger
from .base import BaseMiddleware, CallNext, MiddlewareContext


def describe_call(context: MiddlewareContext, max_length: int = 200) -> Dict[str, str]:
    """Log fields for a call: each argument rendered with ``safe_stringify``."""
    request = context.request
    if request is not None:
        args = {
            "messages": [m.model_dump() for m in request.messages],
            "assistant": request.assistant.name,
            "tools": [t.name for t in request.tools or []],
        }
    elif isinstance(context.params, dict):
        args = context.params
    else:
        args = {"params": context.params}
    return {f"arg_{key}": safe_stringify(value, max_length=max_length) for key, value in args.items()}


class LoggingMiddleware(BaseMiddleware):
    """Logs each call through a ProviderLogger bound to the context's provider.

    Errors are logged and re-raised unchanged.
    """

    name = "logging"

    def __init__(self, max_length: int = 200):
        self.max_length = max_length
        self._loggers: Dict[str, ProviderLogger] = {}

    def _logger(self, provider_id: str) -> ProviderLogger:
        logger = self._loggers.get(provider_id)
        if logger is None:
            logger = self._loggers[provider_id] = ProviderLogger(provider_id)
        return logger

    async def __call__(self, context: MiddlewareContext, call_next: CallNext) -> Any:
        logger = self._logger(context.provider_id)
        model: Optional[str] = context.model.id if context.model is not None else None
        start = time.time()
        logger.debug(
            f"Calling {context.method_name}",
            model=model,
            request_id=context.request_id,
            topic_id=context.topic_id,
            **describe_call(context, self.max_length),
        )
        try:
            result = await call_next()
        except Exception as e:
            logger.error(
                f"{context.method_name} failed",
                model=model,
                request_id=context.request_id,
                duration_ms=int((time.time() - start) * 1000),
                error=e,
            )
            raise
        if isinstance(result, CompletionsResult):
            logger.debug(
                f"{context.method_name} stream opened",
                model=model,
                request_id=context.request_id,
            )
            result.stream = self._track_stream(context, logger, model, start, result.stream)
            return result
        logger.debug(
            f"{context.method_name} returned",
            model=model,
            request_id=context.request_id,
            duration_ms=int((time.time() - start) * 1000),
            result=safe_stringify(result, self.max_length),
        )
        return result

    async def _track_stream(
        self,
        context: MiddlewareContext,
        logger: ProviderLogger,
        model: Optional[str],
        start: float,
        stream: AsyncIterator[Chunk],
    ) -> AsyncGenerator[Chunk, None]:
        """Log the stream's real outcome once it is drained, closed or fails."""
        chunks = 0
        error_chunk: Optional[ErrorChunk] = None
        try:
            async for chunk in stream:
                chunks += 1
                if isinstance(chunk, ErrorChunk):
                    error_chunk = chunk
                yield chunk
        except (GeneratorExit, asyncio.CancelledError):
            logger.info(
                f"{context.method_name} stopped",
                model=model,
                request_id=context.request_id,
                duration_ms=int((time.time() - start) * 1000),
                chunks=chunks,
            )
            raise
        except Exception as e:
            logger.error(
                f"{context.method_name} failed",
                model=model,
                request_id=context.request_id,
                duration_ms=int((time.time() - start) * 1000),
                chunks=chunks,
                error=e,
            )
            raise
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        if error_chunk is not None:
            logger.error(
                f"{context.method_name} failed",
                model=model,
                request_id=context.request_id,
                duration_ms=int((time.time() - start) * 1000),
                chunks=chunks,
                error_msg=error_chunk.message,
            )
        else:
            logger.info(
                f"{context.method_name} completed",
                model=model,
                request_id=context.request_id,
                duration_ms=int((time.time() - start) * 1000),
                chunks=chunks,
            )
