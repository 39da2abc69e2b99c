"""
Error normalization.

Any raw failure value (exception, string, mapping, arbitrary object, None)
becomes a plain mapping that can travel inside an ``ErrorChunk`` or be
handed to a trace sink. The conversion is idempotent and never raises.
"""

import logging
import traceback
from typing import Any, Dict, Mapping

logger = logging.getLogger(__name__)

SERIALIZATION_PLACEHOLDER_MESSAGE = "[unserializable error]"


class SerializationError(Exception):
    """A value could not be converted safely. Never escapes the normalizers."""
    pass


def serialize_error(error: Any) -> Dict[str, Any]:
    """
    Normalize a failure value into a mapping.

    Rules:
    - exception: ``{"message", "name", "stack"}``
    - string: ``{"message": error}``
    - mapping: returned unchanged (with or without a ``message`` key)
    - object overriding ``__str__``: ``{"message": str(error)}``
    - other object: its ``message`` attribute, or a copy of its attributes
    - None: ``{}``

    Args:
        error: The raw failure value

    Returns:
        Normalized mapping; ``{"message": "[unserializable error]"}`` if the
        value could not be converted.
    """
    try:
        return _serialize(error)
    except Exception as exc:
        logger.debug(f"Falling back to placeholder while serializing {type(error).__name__}: {exc!r}")
        return {"message": SERIALIZATION_PLACEHOLDER_MESSAGE}


def _serialize(error: Any) -> Dict[str, Any]:
    if error is None:
        return {}

    if isinstance(error, BaseException):
        return {
            "message": str(error) or type(error).__name__,
            "name": type(error).__name__,
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }

    if isinstance(error, str):
        return {"message": error}

    if isinstance(error, dict):
        return error
    if isinstance(error, Mapping):
        return dict(error)

    if _has_custom_str(error):
        return {"message": str(error)}

    message = getattr(error, "message", None)
    if isinstance(message, str):
        return {"message": message}

    if hasattr(error, "__dict__"):
        return dict(vars(error))

    raise SerializationError(f"Cannot normalize value of type {type(error).__name__}")


def _has_custom_str(value: Any) -> bool:
    return type(value).__str__ is not object.__str__


def error_message(error: Any) -> str:
    """Best-effort one-line message for logs and user notices."""
    return str(serialize_error(error).get("message", ""))
