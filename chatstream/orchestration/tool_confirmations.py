"""Pending user confirmations for tool calls, keyed by tool call id."""

import asyncio
import logging
from collections import deque
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class ToolConfirmationRegistry:
    """
    One future per tool call awaiting the user's decision.

    ``request`` creates the future if absent, ``resolve`` settles it with
    True (approved) or False (denied). A decision nobody is waiting for yet is
    kept for a later ``wait``; at most ``max_unclaimed`` such decisions are
    kept, oldest dropped first.
    """

    def __init__(self, max_unclaimed: int = 256):
        self.max_unclaimed = max_unclaimed
        self._pending: Dict[str, asyncio.Future] = {}
        self._waiters: Dict[str, int] = {}
        self._unclaimed: deque = deque()

    def request(self, tool_call_id: str) -> asyncio.Future:
        future = self._pending.get(tool_call_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._pending[tool_call_id] = future
        return future

    async def wait(self, tool_call_id: str, timeout: Optional[float] = None) -> bool:
        """
        Wait for the decision on a tool call.

        Raises:
            asyncio.TimeoutError: If no decision arrives within ``timeout`` seconds
            asyncio.CancelledError: If the confirmation was cleared
        """
        future = self.request(tool_call_id)
        self._waiters[tool_call_id] = self._waiters.get(tool_call_id, 0) + 1
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        finally:
            remaining = self._waiters.pop(tool_call_id) - 1
            if remaining:
                self._waiters[tool_call_id] = remaining
            if future.done() and self._pending.get(tool_call_id) is future:
                del self._pending[tool_call_id]

    def resolve(self, tool_call_id: str, approved: bool) -> bool:
        """Settle a pending confirmation. Returns False if nothing was waiting."""
        future = self._pending.get(tool_call_id)
        if future is None or future.done():
            logger.debug(f"No pending confirmation for tool call {tool_call_id}")
            return False
        future.set_result(bool(approved))
        if not self._waiters.get(tool_call_id):
            self._keep_unclaimed(tool_call_id, future)
        return True

    def _keep_unclaimed(self, tool_call_id: str, future: asyncio.Future) -> None:
        self._unclaimed.append((tool_call_id, future))
        while len(self._unclaimed) > self.max_unclaimed:
            old_id, old_future = self._unclaimed.popleft()
            if self._pending.get(old_id) is old_future:
                del self._pending[old_id]
                logger.debug(f"Dropped unclaimed confirmation for tool call {old_id}")

    def clear(self, tool_call_id: str) -> None:
        future = self._pending.pop(tool_call_id, None)
        if future is not None and not future.done():
            future.cancel()

    def clear_all(self) -> None:
        for tool_call_id in list(self._pending):
            self.clear(tool_call_id)
        self._unclaimed.clear()

    def pending_ids(self) -> List[str]:
        return [tid for tid, future in self._pending.items() if not future.done()]

    def __contains__(self, tool_call_id: str) -> bool:
        future = self._pending.get(tool_call_id)
        return future is not None and not future.done()
