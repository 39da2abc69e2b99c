"""
Structured logging for the completion runtime.

Adapters and middleware stages log through ``ProviderLogger`` so every line
carries the same bracketed fields (provider, model, request_id, ...).
"""

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

from ..models.usage import TokenUsage

PACKAGE_LOGGER = "chatstream"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: Union[str, int] = "WARNING",
                      handler: Optional[logging.Handler] = None) -> logging.Logger:
    """
    Attach a handler to the package logger and set its level.

    Calling it again only updates the level; handlers are not duplicated.

    Returns:
        The ``chatstream`` logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved
    package_logger.setLevel(level)

    if handler is None and package_logger.handlers:
        return package_logger
    handler = handler or logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    return package_logger


@dataclass
class CallRecord:
    """One tracked vendor call."""
    method: str
    model: str
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    @property
    def elapsed_ms(self) -> int:
        return int(self.elapsed * 1000)


class ProviderLogger:
    """Structured logger bound to one provider id."""

    def __init__(self, provider_name: str):
        self.provider = provider_name
        self.logger = logging.getLogger(f"{PACKAGE_LOGGER}.providers.{provider_name}")

    def _log(self, level: int, message: str, **fields) -> None:
        if not self.logger.isEnabledFor(level):
            return
        error = fields.pop("error", None)
        if isinstance(error, BaseException):
            fields["error_type"] = type(error).__name__
            fields["error_msg"] = str(error)
        rendered = " ".join(
            [f"provider={self.provider}"] + [f"{k}={v}" for k, v in fields.items() if v is not None]
        )
        self.logger.log(level, f"[{rendered}] {message}")

    def debug(self, message: str, **fields) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields) -> None:
        """Log at ERROR; an ``error=`` exception adds error_type and error_msg fields."""
        self._log(logging.ERROR, message, **fields)

    @contextmanager
    def track_request(self, method: str, model: str,
                      request_id: Optional[str] = None) -> Iterator[CallRecord]:
        """
        Log the start and end of a vendor call.

        A call closed early by its consumer (generator close or task
        cancellation) is logged as stopped rather than failed.

        Yields:
            The CallRecord for the call
        """
        call = CallRecord(method, model, request_id) if request_id else CallRecord(method, model)
        self.debug(f"Starting {method} request", model=model, request_id=call.request_id)
        try:
            yield call
        except (GeneratorExit, asyncio.CancelledError):
            self.info(f"Stopped {method} request", model=model, request_id=call.request_id,
                      duration_ms=call.elapsed_ms)
            raise
        except Exception as e:
            self.error(f"Failed {method} request", model=model, request_id=call.request_id,
                       duration_ms=call.elapsed_ms, error=e)
            raise
        self.info(f"Completed {method} request", model=model, request_id=call.request_id,
                  duration_ms=call.elapsed_ms)

    def log_usage(self, call: CallRecord, usage: TokenUsage) -> None:
        self.info(
            "Token usage",
            model=call.model,
            request_id=call.request_id,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
        )

    def log_stream_summary(self, call: CallRecord, chunks: int, text_chars: int) -> None:
        """Chunk count and throughput for a finished stream."""
        elapsed = call.elapsed
        self.debug(
            "Streaming metrics",
            model=call.model,
            request_id=call.request_id,
            chunks=chunks,
            total_chars=text_chars,
            duration_ms=call.elapsed_ms,
            chars_per_second=int(text_chars / elapsed) if elapsed > 0 else 0,
        )
