"""
Per-topic task queues.

Work submitted for one conversation topic starts in FIFO order with at most
``concurrency`` tasks in flight. When a queue goes from busy to idle it
calls its idle callbacks once and wakes everyone waiting for it to drain.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]
IdleCallback = Callable[[str], Any]


def _check_concurrency(concurrency: Optional[int]) -> Optional[int]:
    if concurrency is None:
        return None
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError(f"concurrency must be an int >= 1 or None (unbounded), got {concurrency!r}")
    return concurrency


class TopicQueue:
    """
    FIFO queue for one topic.

    Args:
        topic_id: Topic the queue belongs to
        concurrency: Maximum tasks in flight; None for no limit. There is
            no default.
    """

    def __init__(self, topic_id: str, concurrency: Optional[int]):
        self.topic_id = topic_id
        self.concurrency = _check_concurrency(concurrency)
        self._pending: Deque[Tuple[TaskFactory, asyncio.Future]] = deque()
        self._in_flight = 0
        self._tasks: Set[asyncio.Task] = set()
        self._idle_callbacks: List[IdleCallback] = []
        self._drain_waiters: List[asyncio.Future] = []

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_flight_count(self) -> int:
        return self._in_flight

    @property
    def idle(self) -> bool:
        return self._in_flight == 0 and not self._pending

    def on_idle(self, callback: IdleCallback) -> None:
        """Add a callback run with the topic id on every busy-to-idle transition."""
        self._idle_callbacks.append(callback)

    def add(self, factory: TaskFactory) -> asyncio.Future:
        """
        Enqueue a task.

        Args:
            factory: Zero-argument callable returning an awaitable; called
                when the task's turn comes

        Returns:
            Future resolved with the task's result (or exception). Cancelling
            it before the task starts removes the task from the queue.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append((factory, future))
        self._pump()
        return future

    def clear(self) -> int:
        """
        Drop pending tasks and cancel their futures. In-flight tasks keep running.

        Returns:
            Number of pending tasks dropped
        """
        dropped = 0
        while self._pending:
            _, future = self._pending.popleft()
            if not future.done():
                future.cancel()
            dropped += 1
        if dropped:
            logger.debug(f"Dropped {dropped} pending task(s) from topic {self.topic_id}")
        return dropped

    async def wait_until_idle(self) -> None:
        """Return once nothing is pending or in flight."""
        if self.idle:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._drain_waiters.append(waiter)
        await waiter

    def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        while self._pending and (self.concurrency is None or self._in_flight < self.concurrency):
            factory, future = self._pending.popleft()
            if future.cancelled():
                continue
            self._in_flight += 1
            task = loop.create_task(self._run(factory, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            future.add_done_callback(lambda f, t=task: t.cancel() if f.cancelled() and not t.done() else None)

    async def _run(self, factory: TaskFactory, future: asyncio.Future) -> None:
        try:
            result = await factory()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._in_flight -= 1
            self._pump()
            if self.idle:
                self._notify_idle()

    def _notify_idle(self) -> None:
        waiters, self._drain_waiters = self._drain_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        for callback in list(self._idle_callbacks):
            try:
                callback(self.topic_id)
            except Exception:
                logger.exception(f"Idle callback failed for topic {self.topic_id}")

    def __repr__(self) -> str:
        return (
            f"TopicQueue(topic_id={self.topic_id!r}, pending={self.pending_count}, "
            f"in_flight={self.in_flight_count}, concurrency={self.concurrency})"
        )


class TopicQueueRegistry:
    """
    Lazily created queues keyed by topic id.

    Args:
        concurrency: Limit applied to every topic queue (int >= 1), or None
            for explicitly unbounded queues. Required.
        on_idle: Callback added to every queue the registry creates
    """

    def __init__(self, concurrency: Optional[int], on_idle: Optional[IdleCallback] = None):
        self.concurrency = _check_concurrency(concurrency)
        self._idle_callbacks: List[IdleCallback] = [on_idle] if on_idle is not None else []
        self._queues: Dict[str, TopicQueue] = {}

    def get(self, topic_id: str) -> TopicQueue:
        """Queue for ``topic_id``, created on first use."""
        queue = self._queues.get(topic_id)
        if queue is None:
            queue = TopicQueue(topic_id, self.concurrency)
            for callback in self._idle_callbacks:
                queue.on_idle(callback)
            self._queues[topic_id] = queue
        return queue

    def add_idle_callback(self, callback: IdleCallback) -> None:
        """Install ``callback`` on existing queues and on every queue created later."""
        self._idle_callbacks.append(callback)
        for queue in self._queues.values():
            queue.on_idle(callback)

    def add(self, topic_id: str, factory: TaskFactory) -> asyncio.Future:
        return self.get(topic_id).add(factory)

    def clear(self, topic_id: str) -> int:
        """
        Drop a topic's pending tasks.

        The queue itself is forgotten once nothing is in flight; otherwise it
        stays so its concurrency limit still holds for running work.
        """
        queue = self._queues.get(topic_id)
        if queue is None:
            return 0
        dropped = queue.clear()
        if queue.idle:
            del self._queues[topic_id]
        return dropped

    def clear_all(self) -> int:
        return sum(self.clear(topic_id) for topic_id in list(self._queues))

    def counts(self, topic_id: str) -> Tuple[int, int]:
        """(pending, in_flight) for a topic; (0, 0) if it has no queue."""
        queue = self._queues.get(topic_id)
        if queue is None:
            return 0, 0
        return queue.pending_count, queue.in_flight_count

    def is_busy(self, topic_id: str) -> bool:
        queue = self._queues.get(topic_id)
        return queue is not None and not queue.idle

    async def wait_for_topic_queue(self, topic_id: str) -> None:
        """Return once the topic has nothing pending or in flight."""
        queue = self._queues.get(topic_id)
        if queue is not None:
            await queue.wait_until_idle()

    def topic_ids(self) -> List[str]:
        return list(self._queues)

    def __contains__(self, topic_id: str) -> bool:
        return topic_id in self._queues
