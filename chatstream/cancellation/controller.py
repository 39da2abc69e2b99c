"""
Cooperative cancellation for one in-flight request.

A ``StreamAbortController`` owns an ``AbortSignal`` that adapters poll
between native stream events, an optional timeout timer and a single abort
handler slot.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

AbortHandler = Callable[["AbortReason"], None]


class AbortReason(str, Enum):
    """Why a request was aborted. ``TIMEOUT`` is the only timeout sentinel."""
    TIMEOUT = "timeout"
    USER_CANCELLED = "user_cancelled"


class AbortSignal:
    """Read-only view of a controller's abort state."""

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[AbortReason] = None

    @property
    def aborted(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[AbortReason]:
        return self._reason

    async def wait(self) -> AbortReason:
        """Suspend until the signal fires; returns the abort reason."""
        await self._event.wait()
        return self._reason

    def _fire(self, reason: AbortReason) -> None:
        self._reason = reason
        self._event.set()

    def __repr__(self) -> str:
        return f"AbortSignal(aborted={self.aborted}, reason={self._reason})"


class StreamAbortController:
    """
    Abort state for one request.

    Args:
        timeout_ms: Abort with ``AbortReason.TIMEOUT`` after this many
            milliseconds. ``0`` or a negative value disables the timer.

    The abort transition happens at most once. ``on_abort`` keeps a single
    handler: registering again replaces the previous one, and registering
    after the abort calls the new handler immediately.
    """

    def __init__(self, timeout_ms: float = 0):
        self.timeout_ms = timeout_ms
        self.signal = AbortSignal()
        self._handler: Optional[AbortHandler] = None
        self._timer: Optional[asyncio.TimerHandle] = None

        if timeout_ms and timeout_ms > 0:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(timeout_ms / 1000.0, self._on_timeout)

    @property
    def aborted(self) -> bool:
        return self.signal.aborted

    @property
    def reason(self) -> Optional[AbortReason]:
        return self.signal.reason

    @property
    def timer_active(self) -> bool:
        return self._timer is not None

    def on_abort(self, handler: AbortHandler) -> None:
        """Install the abort handler, replacing any previous one."""
        self._handler = handler
        if self.signal.aborted:
            self._invoke(handler, self.signal.reason)

    def abort(self, reason: AbortReason = AbortReason.USER_CANCELLED) -> bool:
        """
        Fire the signal.

        Returns:
            True if this call aborted the request, False if it was already aborted
        """
        if self.signal.aborted:
            return False
        self.cancel_timeout()
        self.signal._fire(reason)
        logger.debug(f"Request aborted: reason={reason.value}")
        if self._handler is not None:
            self._invoke(self._handler, reason)
        return True

    def cancel_timeout(self) -> None:
        """Stop the timeout timer. Safe to call any number of times."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self) -> None:
        self._timer = None
        self.abort(AbortReason.TIMEOUT)

    @staticmethod
    def _invoke(handler: AbortHandler, reason: AbortReason) -> None:
        try:
            handler(reason)
        except Exception:
            logger.exception("Abort handler raised")
