"""End-to-end tests: orchestrator, middleware, queues and tracing against mocked vendor clients."""

import asyncio
from collections import Counter

import pytest
from unittest.mock import AsyncMock

from chatstream import Orchestrator, RuntimeSettings
from chatstream.models.chunks import ErrorChunk, ReasoningDeltaChunk, TextDeltaChunk
from chatstream.models.requests import OutcomeStatus
from chatstream.models.usage import TokenUsage
from chatstream.providers import AnthropicProvider, OpenAIProvider, ProviderRegistry
from tests.helpers.streaming_mocks import (
    ScriptedProvider,
    create_interrupted_openai_stream,
    create_openai_stream,
    openai_chunk,
    text_script,
)


@pytest.fixture
def providers(mock_openai_client, mock_anthropic_client):
    registry = ProviderRegistry(factories={})
    registry.register_instance("openai", OpenAIProvider(client=mock_openai_client))
    registry.register_instance("anthropic", AnthropicProvider(client=mock_anthropic_client))
    return registry


@pytest.fixture
def orchestrator(providers, trace_sink):
    return Orchestrator.from_settings(RuntimeSettings(topic_concurrency=1), sink=trace_sink, providers=providers)


@pytest.fixture
def idle_counts(orchestrator):
    counts = Counter()
    orchestrator.queues.add_idle_callback(lambda topic_id: counts.update([topic_id]))
    return counts


@pytest.mark.integration
class TestEndToEnd:
    """End-to-end integration tests."""

    @pytest.mark.asyncio
    async def test_openai_stream_through_topic(self, orchestrator, make_request, trace_sink, idle_counts):
        request, received = make_request(model_id="gpt-4o-mini", provider_id="openai")

        outcome = await orchestrator.submit("topic-1", request, timeout_ms=5000)

        assert outcome.ok
        assert [c.text for c in received if isinstance(c, TextDeltaChunk)] == ["Test", " response", " streaming"]
        assert not any(isinstance(c, ErrorChunk) for c in received)
        assert outcome.usage == TokenUsage(10, 6, 16)

        assert idle_counts["topic-1"] == 1
        assert len(trace_sink.spans_named("topic:topic-1")) == 1
        span = trace_sink.spans_named("openai.completions")[0]
        assert trace_sink.transcript_for(span.id) == "Test response streaming"
        assert trace_sink.usage_for(span.id) == TokenUsage(10, 6, 16)

    @pytest.mark.asyncio
    async def test_anthropic_stream(self, orchestrator, make_request):
        request, received = make_request(model_id="claude-3-5-haiku", provider_id="anthropic")

        outcome = await orchestrator.completions(request)

        assert outcome.text == "Test response"
        assert outcome.usage == TokenUsage(10, 4, 14)
        assert received[-1].finish_reason == "end_turn"

    @pytest.mark.asyncio
    async def test_qwen_suffix_and_inline_thinking(self, orchestrator, mock_openai_client, make_request):
        async def qwen_stream():
            for text in ["<think>", "weighing options", "</think>\n\n", "Here is a joke."]:
                yield openai_chunk(content=text)
            yield openai_chunk(finish_reason="stop")

        mock_openai_client.chat.completions.create = AsyncMock(return_value=qwen_stream())
        request, received = make_request(model_id="qwen3-32b", provider_id="openai")

        outcome = await orchestrator.completions(request)

        sent = mock_openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[-1]["content"] == "Then tell me a joke. /no_think"
        assert request.messages[-1].content == "Then tell me a joke."
        assert outcome.reasoning == "weighing options"
        assert outcome.text == "Here is a joke."
        assert any(isinstance(c, ReasoningDeltaChunk) for c in received)

    @pytest.mark.asyncio
    async def test_timeout_does_not_affect_other_topics(self, orchestrator, providers, make_request):
        providers.register_instance("slow", ScriptedProvider(provider_id="slow", hang=True))
        slow_request, slow_received = make_request(provider_id="slow")
        fast_request, fast_received = make_request(model_id="gpt-4o-mini", provider_id="openai")

        slow, fast = await asyncio.gather(
            orchestrator.submit("topic-slow", slow_request, timeout_ms=50),
            orchestrator.submit("topic-fast", fast_request),
        )

        assert slow.status == OutcomeStatus.TIMEOUT
        assert sum(isinstance(c, ErrorChunk) for c in slow_received) == 1
        assert fast.ok
        assert not any(isinstance(c, ErrorChunk) for c in fast_received)

    @pytest.mark.asyncio
    async def test_failure_isolated_to_its_topic(self, orchestrator, mock_openai_client, make_request,
                                                 idle_counts, trace_sink):
        async def create(**kwargs):
            if kwargs["model"] == "gpt-broken":
                return create_interrupted_openai_stream(1)
            return create_openai_stream(["fine"])

        mock_openai_client.chat.completions.create = AsyncMock(side_effect=create)

        broken, _ = make_request(model_id="gpt-broken", provider_id="openai")
        healthy, _ = make_request(model_id="gpt-4o-mini", provider_id="openai")
        retry, _ = make_request(model_id="gpt-4o-mini", provider_id="openai")

        first = orchestrator.submit("topic-a", broken)
        second = orchestrator.submit("topic-b", healthy)
        outcomes = await asyncio.gather(first, second)

        assert outcomes[0].status == OutcomeStatus.ERROR
        assert "connection failed" in outcomes[0].error["message"]
        assert outcomes[1].ok

        assert (await orchestrator.submit("topic-a", retry)).ok
        assert idle_counts == Counter({"topic-a": 2, "topic-b": 1})
        error_spans = [s for s in trace_sink.spans_named("openai.completions") if s.status.value == "error"]
        assert len(error_spans) == 1

    @pytest.mark.asyncio
    async def test_concurrent_topics_keep_their_order(self, orchestrator, providers, make_request):
        provider = ScriptedProvider(text_script("a", "b"), delay=0.005)
        providers.register_instance("scripted", provider)
        submitted = {topic: [make_request()[0] for _ in range(3)] for topic in ("x", "y")}

        futures = []
        for index in range(3):
            for topic, requests in submitted.items():
                futures.append(orchestrator.submit(topic, requests[index]))
        await asyncio.gather(*futures)

        for topic, requests in submitted.items():
            expected = [r.request_id for r in requests]
            seen = [r.request_id for r in provider.requests if r.request_id in expected]
            assert seen == expected
