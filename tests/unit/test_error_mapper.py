"""Tests for vendor error mapping."""

import anthropic
import httpx
import openai
import pytest

from chatstream.providers.base import ProviderError
from chatstream.providers.errors import ErrorMapper

REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat")


def _response(status, headers=None):
    return httpx.Response(status, request=REQUEST, headers=headers)


class TestErrorMapper:

    def test_provider_error_passes_through(self):
        original = ProviderError("already mapped", "openai", status_code=400)
        assert ErrorMapper.map_error(original, "openai") is original

    def test_rate_limit(self):
        error = openai.RateLimitError("Rate limit reached", response=_response(429, {"Retry-After": "2.5"}), body=None)

        mapped = ErrorMapper.map_error(error, "openai")

        assert mapped.message == "OpenAI API error: Rate limit reached"
        assert mapped.status_code == 429
        assert mapped.retry_after == 2.5
        assert mapped.is_retryable
        assert mapped.original_error is error
        assert ErrorMapper.get_error_classification(mapped)["category"] == "rate_limit"

    def test_authentication_is_not_retryable(self):
        error = anthropic.AuthenticationError("invalid x-api-key", response=_response(401), body=None)

        mapped = ErrorMapper.map_error(error, "anthropic")

        assert mapped.message == "Anthropic API error: invalid x-api-key"
        assert mapped.status_code == 401
        assert not mapped.is_retryable
        assert ErrorMapper.get_error_classification(mapped)["category"] == "authentication"

    @pytest.mark.parametrize("status", [500, 502, 503, 529])
    def test_server_errors_are_retryable(self, status):
        error = openai.APIStatusError("upstream failure", response=_response(status), body=None)
        mapped = ErrorMapper.map_error(error, "openai-compatible")
        assert mapped.is_retryable
        assert mapped.message.startswith("OpenAI-compatible API error")

    def test_connection_error(self):
        mapped = ErrorMapper.map_error(anthropic.APIConnectionError(request=REQUEST), "anthropic")

        assert mapped.message.startswith("Anthropic API error: connection failed")
        assert mapped.status_code is None
        assert mapped.is_retryable
        assert ErrorMapper.get_error_classification(mapped)["category"] == "network"

    def test_transport_timeout(self):
        mapped = ErrorMapper.map_error(httpx.ReadTimeout("read timed out", request=REQUEST), "openai")
        assert "request timed out" in mapped.message
        assert mapped.is_retryable

    def test_rate_limit_phrase_without_status(self):
        mapped = ErrorMapper.map_error(RuntimeError("Too many requests, slow down"), "custom")
        assert mapped.message == "custom API error: Too many requests, slow down"
        assert mapped.is_retryable

    def test_unknown_error(self):
        mapped = ErrorMapper.map_error(ValueError("bad"), "openai")
        assert not mapped.is_retryable
        assert ErrorMapper.get_error_classification(mapped)["category"] == "unknown"
        assert ErrorMapper.get_error_classification(mapped)["error_type"] == "ValueError"

    def test_malformed_response(self):
        error = ErrorMapper.malformed_response("anthropic", "tool input is not JSON")
        assert error.message == "Anthropic API error: malformed response: tool input is not JSON"
        assert ErrorMapper.get_error_classification(error)["category"] == "malformed_response"

    def test_unsupported_operation(self):
        error = ProviderError.unsupported("anthropic", "embeddings")
        assert error.operation == "embeddings"
        assert ErrorMapper.get_error_classification(error)["category"] == "unsupported"
