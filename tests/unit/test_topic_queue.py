"""Tests for per-topic queues."""

import asyncio

import pytest

from chatstream.queue import TopicQueue, TopicQueueRegistry


def gated_task(log, name, gate=None, result=None):
    async def run():
        log.append(f"start {name}")
        if gate is not None:
            await gate.wait()
        log.append(f"end {name}")
        return result if result is not None else name
    return run


class TestTopicQueue:
    """FIFO scheduling, concurrency and idle notification."""

    @pytest.mark.asyncio
    async def test_fifo_with_concurrency_one(self):
        log = []
        idle_calls = []
        queue = TopicQueue("t1", concurrency=1)
        queue.on_idle(idle_calls.append)

        futures = [queue.add(gated_task(log, name)) for name in ("a", "b", "c")]
        results = await asyncio.gather(*futures)
        await queue.wait_until_idle()

        assert results == ["a", "b", "c"]
        assert log == ["start a", "end a", "start b", "end b", "start c", "end c"]
        assert idle_calls == ["t1"]
        assert queue.idle

    @pytest.mark.asyncio
    async def test_concurrency_limit(self):
        log = []
        gate = asyncio.Event()
        queue = TopicQueue("t", concurrency=2)

        futures = [queue.add(gated_task(log, n, gate)) for n in ("a", "b", "c")]
        await asyncio.sleep(0)

        assert queue.in_flight_count == 2
        assert queue.pending_count == 1
        assert log == ["start a", "start b"]

        gate.set()
        await asyncio.gather(*futures)
        assert queue.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_unbounded(self):
        gate = asyncio.Event()
        queue = TopicQueue("t", concurrency=None)
        futures = [queue.add(gated_task([], n, gate)) for n in range(5)]
        await asyncio.sleep(0)

        assert queue.in_flight_count == 5
        gate.set()
        await asyncio.gather(*futures)

    @pytest.mark.parametrize("bad", [0, -1, 1.5, True, "2"])
    def test_invalid_concurrency(self, bad):
        with pytest.raises(ValueError):
            TopicQueue("t", concurrency=bad)

    @pytest.mark.asyncio
    async def test_failure_does_not_block_queue(self):
        queue = TopicQueue("t", concurrency=1)

        async def fail():
            raise RuntimeError("task failed")

        failing = queue.add(fail)
        ok = queue.add(gated_task([], "next"))

        with pytest.raises(RuntimeError):
            await failing
        assert await ok == "next"

    @pytest.mark.asyncio
    async def test_idle_fires_once_per_busy_period(self):
        idle_calls = []
        queue = TopicQueue("t", concurrency=1)
        queue.on_idle(idle_calls.append)

        await queue.add(gated_task([], "a"))
        await queue.wait_until_idle()
        await queue.add(gated_task([], "b"))
        await queue.wait_until_idle()

        assert idle_calls == ["t", "t"]

    @pytest.mark.asyncio
    async def test_clear_drops_pending_only(self):
        log = []
        gate = asyncio.Event()
        queue = TopicQueue("t", concurrency=1)

        running = queue.add(gated_task(log, "a", gate))
        pending = queue.add(gated_task(log, "b"))
        await asyncio.sleep(0)

        assert queue.clear() == 1
        assert pending.cancelled()

        gate.set()
        assert await running == "a"
        assert log == ["start a", "end a"]

    @pytest.mark.asyncio
    async def test_cancelled_future_is_skipped(self):
        log = []
        gate = asyncio.Event()
        queue = TopicQueue("t", concurrency=1)

        first = queue.add(gated_task(log, "a", gate))
        second = queue.add(gated_task(log, "b"))
        second.cancel()

        gate.set()
        await first
        await queue.wait_until_idle()
        assert log == ["start a", "end a"]

    @pytest.mark.asyncio
    async def test_failing_idle_callback_is_contained(self):
        def broken(topic_id):
            raise RuntimeError("callback broke")

        queue = TopicQueue("t", concurrency=1)
        queue.on_idle(broken)
        assert await queue.add(gated_task([], "a")) == "a"

    @pytest.mark.asyncio
    async def test_wait_until_idle_when_already_idle(self):
        await asyncio.wait_for(TopicQueue("t", concurrency=1).wait_until_idle(), timeout=1)


class TestTopicQueueRegistry:
    """Lazy per-topic queues."""

    @pytest.mark.asyncio
    async def test_create_if_absent(self):
        registry = TopicQueueRegistry(concurrency=1)
        assert registry.get("a") is registry.get("a")
        assert registry.get("a") is not registry.get("b")
        assert sorted(registry.topic_ids()) == ["a", "b"]

    def test_concurrency_is_required(self):
        with pytest.raises(TypeError):
            TopicQueueRegistry()

    @pytest.mark.asyncio
    async def test_topics_run_independently(self):
        log = []
        gate = asyncio.Event()
        registry = TopicQueueRegistry(concurrency=1)

        blocked = registry.add("a", gated_task(log, "a1", gate))
        other = registry.add("b", gated_task(log, "b1"))

        assert await other == "b1"
        assert registry.counts("a") == (0, 1)
        assert registry.is_busy("a")

        gate.set()
        await blocked
        assert not registry.is_busy("a")

    @pytest.mark.asyncio
    async def test_idle_callbacks_installed_on_all_queues(self):
        calls = []
        registry = TopicQueueRegistry(concurrency=1, on_idle=lambda t: calls.append(("first", t)))
        registry.get("early")
        registry.add_idle_callback(lambda t: calls.append(("second", t)))

        await registry.add("early", gated_task([], "x"))
        await registry.wait_for_topic_queue("early")
        await registry.add("late", gated_task([], "y"))
        await registry.wait_for_topic_queue("late")

        assert calls == [
            ("first", "early"), ("second", "early"),
            ("first", "late"), ("second", "late"),
        ]

    @pytest.mark.asyncio
    async def test_clear_forgets_idle_queue(self):
        registry = TopicQueueRegistry(concurrency=1)
        registry.get("t")
        assert registry.clear("t") == 0
        assert "t" not in registry
        assert registry.clear("missing") == 0

    @pytest.mark.asyncio
    async def test_clear_keeps_busy_queue(self):
        gate = asyncio.Event()
        registry = TopicQueueRegistry(concurrency=1)
        running = registry.add("t", gated_task([], "a", gate))
        registry.add("t", gated_task([], "b"))
        await asyncio.sleep(0)

        assert registry.clear("t") == 1
        assert "t" in registry
        gate.set()
        await running

    @pytest.mark.asyncio
    async def test_clear_all(self):
        gate = asyncio.Event()
        registry = TopicQueueRegistry(concurrency=1)
        first = registry.add("a", gated_task([], "a1", gate))
        registry.add("a", gated_task([], "a2"))
        second = registry.add("b", gated_task([], "b1", gate))
        registry.add("b", gated_task([], "b2"))
        await asyncio.sleep(0)

        assert registry.clear_all() == 2
        gate.set()
        assert await asyncio.gather(first, second) == ["a1", "b1"]

    def test_counts_for_unknown_topic(self):
        assert TopicQueueRegistry(concurrency=None).counts("nope") == (0, 0)
