"""Lookup of live abort controllers by request id."""

import logging
from typing import Dict, List, Optional

from .controller import AbortReason, StreamAbortController

logger = logging.getLogger(__name__)


class AbortRegistry:
    """Maps request ids to the controllers of requests still in flight."""

    def __init__(self):
        self._controllers: Dict[str, StreamAbortController] = {}

    def register(self, request_id: str, controller: StreamAbortController) -> None:
        if request_id in self._controllers:
            logger.warning(f"Replacing abort controller for request {request_id}")
        self._controllers[request_id] = controller

    def get(self, request_id: str) -> Optional[StreamAbortController]:
        return self._controllers.get(request_id)

    def abort(self, request_id: str, reason: AbortReason = AbortReason.USER_CANCELLED) -> bool:
        """Abort one request. Returns False for unknown or already aborted ids."""
        controller = self._controllers.get(request_id)
        if controller is None:
            return False
        return controller.abort(reason)

    def discard(self, request_id: str, controller: Optional[StreamAbortController] = None) -> None:
        """Forget a request. With ``controller``, only if it is still the registered one."""
        current = self._controllers.get(request_id)
        if current is None:
            return
        if controller is not None and current is not controller:
            return
        del self._controllers[request_id]

    def abort_all(self, reason: AbortReason = AbortReason.USER_CANCELLED) -> List[str]:
        """Abort every registered request; returns the ids that were aborted."""
        aborted = []
        for request_id, controller in list(self._controllers.items()):
            if controller.abort(reason):
                aborted.append(request_id)
        return aborted

    def request_ids(self) -> List[str]:
        return list(self._controllers)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)
