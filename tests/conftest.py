"""Shared pytest fixtures for chatstream tests."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from chatstream.models.conversation_types import ConversationMessage, TurnRole as ConversationRole
from chatstream.models.requests import AssistantConfig, AssistantSettings, CompletionRequest, ModelDescriptor
from chatstream.providers.registry import ProviderRegistry
from chatstream.queue.topic_queue import TopicQueueRegistry
from chatstream.tracing.manager import SpanManager
from chatstream.tracing.sink import InMemoryTraceSink
from tests.helpers.streaming_mocks import create_anthropic_stream, create_openai_stream


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    env_vars = {
        "OPENAI_API_KEY": "test-openai-key",
        "ANTHROPIC_API_KEY": "test-anthropic-key",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def sample_conversation_messages():
    """Sample conversation messages."""
    return [
        ConversationMessage(
            role=ConversationRole.SYSTEM,
            content="You are a helpful assistant."
        ),
        ConversationMessage(
            role=ConversationRole.USER,
            content="What is the weather like?"
        ),
        ConversationMessage(
            role=ConversationRole.ASSISTANT,
            content="I don't have access to real-time weather data."
        ),
        ConversationMessage(
            role=ConversationRole.USER,
            content="Then tell me a joke."
        ),
    ]


@pytest.fixture
def make_request(sample_conversation_messages):
    """Factory for completion requests that collect their chunks in ``request.received``."""
    def _make(model_id="test-model", provider_id="scripted", on_chunk=None, messages=None, **settings):
        received = []
        request = CompletionRequest(
            messages=messages if messages is not None else list(sample_conversation_messages),
            assistant=AssistantConfig(
                name="tester",
                prompt="Be brief.",
                model=ModelDescriptor(id=model_id, provider_id=provider_id),
                settings=AssistantSettings(**settings),
            ),
            on_chunk=on_chunk if on_chunk is not None else received.append,
        )
        return request, received
    return _make


@pytest.fixture
def trace_sink():
    return InMemoryTraceSink()


@pytest.fixture
def span_manager(trace_sink):
    return SpanManager(trace_sink)


@pytest.fixture
def queue_registry():
    return TopicQueueRegistry(concurrency=1)


@pytest.fixture
def empty_registry():
    """Provider registry without the built-in factories."""
    return ProviderRegistry(factories={})


@pytest.fixture
def mock_openai_client():
    """Mock OpenAI client."""
    client = MagicMock()

    chunks = ["Test", " response", " streaming"]

    async def create_response(**kwargs):
        if kwargs.get("stream"):
            return create_openai_stream(chunks)
        completion = MagicMock()
        completion.choices = [MagicMock(message=MagicMock(content="ok"), finish_reason="stop")]
        return completion

    client.chat.completions.create = AsyncMock(side_effect=create_response)
    return client


@pytest.fixture
def mock_anthropic_client():
    """Mock Anthropic client."""
    client = MagicMock()

    chunks = ["Test", " response"]

    async def create_response(**kwargs):
        if kwargs.get("stream"):
            return create_anthropic_stream(chunks)
        return MagicMock(content=[MagicMock(type="text", text="ok")])

    client.messages.create = AsyncMock(side_effect=create_response)
    return client
