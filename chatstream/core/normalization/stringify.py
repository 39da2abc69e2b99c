"""Safe stringification of call arguments for logs."""

import json
import logging
from typing import Any, List, Sequence, Set

from .errors import SerializationError

logger = logging.getLogger(__name__)

MAX_VALUE_LENGTH = 200
MAX_OBJECT_KEYS = 20
MAX_DEPTH = 6

CIRCULAR_PLACEHOLDER = "[Circular]"
UNSERIALIZABLE_PLACEHOLDER = "[Unserializable]"


def safe_stringify(value: Any, max_length: int = MAX_VALUE_LENGTH,
                   max_keys: int = MAX_OBJECT_KEYS) -> str:
    """
    Render a value for logging without ever raising.

    Circular references render as ``"[Circular]"``, mappings with more than
    ``max_keys`` keys as ``"[Object with N keys]"``, and the result is cut to
    ``max_length`` characters.
    """
    try:
        if isinstance(value, str):
            rendered = value
        else:
            rendered = json.dumps(_sanitize(value, set(), max_keys, 0), ensure_ascii=False, default=_fallback)
    except Exception as exc:
        logger.debug(f"safe_stringify fallback for {type(value).__name__}: {exc!r}")
        return UNSERIALIZABLE_PLACEHOLDER
    return _truncate(rendered, max_length)


def stringify_args(args: Sequence[Any], max_length: int = MAX_VALUE_LENGTH) -> List[str]:
    """Stringify each positional argument separately, each one capped."""
    return [safe_stringify(arg, max_length=max_length) for arg in args]


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def _fallback(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return UNSERIALIZABLE_PLACEHOLDER


def _sanitize(value: Any, seen: Set[int], max_keys: int, depth: int) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if depth > MAX_DEPTH:
        return f"[{type(value).__name__}]"

    marker = id(value)
    if marker in seen:
        return CIRCULAR_PLACEHOLDER

    seen.add(marker)
    try:
        if hasattr(value, "model_dump") and callable(value.model_dump):
            try:
                value = value.model_dump()
            except Exception as exc:
                raise SerializationError(str(exc)) from exc

        if isinstance(value, dict):
            if len(value) > max_keys:
                return f"[Object with {len(value)} keys]"
            return {str(k): _sanitize(v, seen, max_keys, depth + 1) for k, v in value.items()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [_sanitize(v, seen, max_keys, depth + 1) for v in value]
        if isinstance(value, BaseException):
            return f"{type(value).__name__}: {value}"
        if callable(value):
            return f"[function {getattr(value, '__name__', type(value).__name__)}]"
        return _fallback(value)
    finally:
        seen.discard(marker)
