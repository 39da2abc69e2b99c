"""Normalization layer.

This layer handles:
- Error normalization into plain mappings
- Usage data normalization across providers
- Safe rendering of arbitrary values for logs
"""

from .errors import SerializationError, error_message, serialize_error
from .stringify import safe_stringify, stringify_args
from .usage import extract_usage, normalize_usage

__all__ = [
    "SerializationError",
    "error_message",
    "serialize_error",
    "safe_stringify",
    "stringify_args",
    "extract_usage",
    "normalize_usage",
]
