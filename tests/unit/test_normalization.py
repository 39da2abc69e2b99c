"""Tests for error, usage and argument normalization."""

from types import SimpleNamespace

import pytest

from chatstream.core.normalization import (
    error_message,
    extract_usage,
    normalize_usage,
    safe_stringify,
    serialize_error,
    stringify_args,
)
from chatstream.models.usage import TokenUsage


class CustomStr:
    def __str__(self):
        return "custom text"


class WithMessage:
    def __init__(self):
        self.message = "attribute message"


class PlainObject:
    def __init__(self):
        self.code = 42
        self.detail = "bad"


class TestSerializeError:
    """Error normalization table."""

    def test_exception(self):
        try:
            raise ValueError("bad value")
        except ValueError as e:
            result = serialize_error(e)
        assert result["message"] == "bad value"
        assert result["name"] == "ValueError"
        assert "bad value" in result["stack"]

    def test_exception_without_message_uses_name(self):
        assert serialize_error(RuntimeError())["message"] == "RuntimeError"

    def test_string(self):
        assert serialize_error("oops") == {"message": "oops"}

    def test_mapping_with_message_unchanged(self):
        error = {"message": "m", "code": 1}
        assert serialize_error(error) is error

    def test_mapping_without_message_unchanged(self):
        error = {"code": 1}
        assert serialize_error(error) == {"code": 1}

    def test_object_with_custom_str(self):
        assert serialize_error(CustomStr()) == {"message": "custom text"}

    def test_object_with_message_attribute(self):
        assert serialize_error(WithMessage()) == {"message": "attribute message"}

    def test_plain_object_copies_attributes(self):
        assert serialize_error(PlainObject()) == {"code": 42, "detail": "bad"}

    def test_none(self):
        assert serialize_error(None) == {}

    def test_idempotent(self):
        once = serialize_error(ValueError("x"))
        assert serialize_error(once) == once

    def test_unconvertible_value_becomes_placeholder(self):
        # object() has neither a custom __str__, a message nor a __dict__
        assert serialize_error(object()) == {"message": "[unserializable error]"}

    def test_error_message(self):
        assert error_message(KeyError("k")) == "'k'"
        assert error_message(None) == ""


class TestSafeStringify:
    """Log argument rendering."""

    def test_circular_reference(self):
        data = {"name": "loop"}
        data["self"] = data
        rendered = safe_stringify(data)
        assert "[Circular]" in rendered

    def test_value_capped(self):
        rendered = safe_stringify("x" * 500)
        assert len(rendered) == 203
        assert rendered.endswith("...")

    def test_large_object_placeholder(self):
        data = {f"k{i}": i for i in range(25)}
        assert safe_stringify(data) == '"[Object with 25 keys]"'

    def test_pydantic_models_are_dumped(self, sample_conversation_messages):
        rendered = safe_stringify(sample_conversation_messages[0], max_length=1000)
        assert "You are a helpful assistant." in rendered

    def test_stringify_args_caps_each_value(self):
        rendered = stringify_args(["a" * 300, {"b": 1}], max_length=10)
        assert rendered[0] == "a" * 10 + "..."
        assert rendered[1] == '{"b": 1}'


class TestUsageNormalization:
    """Usage shapes from different providers."""

    def test_generic_shape(self):
        assert extract_usage({"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}) == TokenUsage(3, 4, 7)

    def test_anthropic_shape(self):
        assert extract_usage({"input_tokens": 10, "output_tokens": 5}) == TokenUsage(10, 5, 15)

    def test_gemini_shape(self):
        usage = extract_usage({
            "usageMetadata": {
                "promptTokenCount": 8,
                "candidatesTokenCount": 4,
                "thoughtsTokenCount": 2,
                "totalTokenCount": 14,
            }
        })
        assert usage == TokenUsage(8, 6, 14)

    def test_gemini_without_candidates_derives_completion(self):
        usage = normalize_usage({"promptTokenCount": 8, "totalTokenCount": 20}, "google")
        assert usage == {"prompt_tokens": 8, "completion_tokens": 12, "total_tokens": 20}

    def test_usage_attribute_on_object(self):
        result = SimpleNamespace(text="hi", usage=SimpleNamespace(prompt_tokens=1, completion_tokens=2))
        assert extract_usage(result) == TokenUsage(1, 2, 3)

    def test_no_usage(self):
        assert extract_usage({"text": "hello"}) is None
        assert extract_usage(None) is None

    def test_negative_counts_clamped(self):
        assert normalize_usage({"prompt_tokens": -5, "completion_tokens": 2}, "openai") == {
            "prompt_tokens": 0,
            "completion_tokens": 2,
            "total_tokens": 2,
        }

    def test_overrides(self):
        usage = normalize_usage({"prompt_tokens": 1}, "openai", completion_tokens=9)
        assert usage["completion_tokens"] == 9
        assert usage["total_tokens"] == 10
