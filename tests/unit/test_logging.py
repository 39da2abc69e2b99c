"""Tests for the structured provider logger."""

import logging

import pytest

from chatstream.models.usage import TokenUsage
from chatstream.observability.logging import CallRecord, ProviderLogger, configure_logging

LOGGER = "chatstream.providers.openai"


def messages(caplog):
    return [r.getMessage() for r in caplog.records if r.name == LOGGER]


def test_fields_are_bracketed(caplog):
    with caplog.at_level(logging.DEBUG, logger=LOGGER):
        ProviderLogger("openai").warning("slow response", model="gpt-4o", request_id=None, attempt=2)

    assert messages(caplog) == ["[provider=openai model=gpt-4o attempt=2] slow response"]


def test_error_fields(caplog):
    with caplog.at_level(logging.DEBUG, logger=LOGGER):
        ProviderLogger("openai").error("call failed", error=ValueError("bad input"))

    assert messages(caplog) == ["[provider=openai error_type=ValueError error_msg=bad input] call failed"]


def test_track_request_success(caplog):
    logger = ProviderLogger("openai")
    with caplog.at_level(logging.DEBUG, logger=LOGGER):
        with logger.track_request("embeddings", "text-embedding-3-small", request_id="req-1") as call:
            assert call.request_id == "req-1"
            logger.log_usage(call, TokenUsage(3, 0, 3))

    logged = messages(caplog)
    assert logged[0].endswith("Starting embeddings request")
    assert "prompt_tokens=3" in logged[1]
    assert "Completed embeddings request" in logged[2]


def test_track_request_failure(caplog):
    logger = ProviderLogger("openai")
    with caplog.at_level(logging.DEBUG, logger=LOGGER):
        with pytest.raises(RuntimeError):
            with logger.track_request("list_models", "*"):
                raise RuntimeError("boom")

    failure = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert "error_type=RuntimeError" in failure[0].getMessage()


@pytest.mark.asyncio
async def test_closed_stream_is_logged_as_stopped(caplog):
    logger = ProviderLogger("openai")

    async def stream():
        with logger.track_request("completions", "gpt-4o"):
            yield 1
            yield 2

    with caplog.at_level(logging.DEBUG, logger=LOGGER):
        generator = stream()
        assert await generator.__anext__() == 1
        await generator.aclose()

    assert any("Stopped completions request" in m for m in messages(caplog))
    assert not any(r.levelno == logging.ERROR for r in caplog.records)


def test_call_record_defaults():
    call = CallRecord("completions", "gpt-4o")
    assert len(call.request_id) == 8
    assert call.elapsed_ms >= 0


def test_configure_logging():
    package_logger = logging.getLogger("chatstream")
    previous_level = package_logger.level
    previous_handlers = list(package_logger.handlers)
    try:
        configure_logging("debug")
        handlers = list(package_logger.handlers)
        configure_logging(logging.INFO)

        assert package_logger.level == logging.INFO
        assert package_logger.handlers == handlers

        with pytest.raises(ValueError):
            configure_logging("chatty")
    finally:
        package_logger.setLevel(previous_level)
        package_logger.handlers = previous_handlers
