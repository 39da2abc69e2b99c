"""
Usage normalization module.

This module provides functions to normalize usage data from different providers
into a consistent format. Adapters, trace handlers and the orchestrator all go
through these functions so usage is reported the same way everywhere.
"""

from typing import Any, Dict, Mapping, Optional

from ...models.usage import TokenUsage

# Keys under which providers nest their usage payload
_USAGE_CONTAINERS = ("usage", "usageMetadata", "usage_metadata")


def normalize_usage(
    usage_data: Optional[Dict[str, Any]],
    provider: str,
    prompt_tokens: Optional[int] = None,
    completion_tokens: Optional[int] = None,
    total_tokens: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Normalize usage data into standard format.

    This function ensures all usage data follows the standard shape:
    {
        "prompt_tokens": int,
        "completion_tokens": int,
        "total_tokens": int
    }

    Args:
        usage_data: Raw usage data from provider (optional)
        provider: Provider name for provider-specific handling
        prompt_tokens: Override for prompt tokens
        completion_tokens: Override for completion tokens
        total_tokens: Override for total tokens

    Returns:
        Dict with normalized usage data
    """
    normalized = {
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "total_tokens": 0,
    }

    if usage_data:
        if provider == "anthropic":
            # Anthropic uses input_tokens/output_tokens
            normalized["prompt_tokens"] = usage_data.get("input_tokens") or 0
            normalized["completion_tokens"] = usage_data.get("output_tokens") or 0
            normalized["total_tokens"] = usage_data.get("total_tokens") or 0
        elif "promptTokenCount" in usage_data or "totalTokenCount" in usage_data:
            normalized.update(_from_gemini(usage_data))
        else:
            # Generic mapping: try common field names
            for prompt_field in ["prompt_tokens", "input_tokens", "prompt_token_count"]:
                if usage_data.get(prompt_field) is not None:
                    normalized["prompt_tokens"] = usage_data[prompt_field]
                    break

            for completion_field in ["completion_tokens", "output_tokens", "generated_tokens"]:
                if usage_data.get(completion_field) is not None:
                    normalized["completion_tokens"] = usage_data[completion_field]
                    break

            normalized["total_tokens"] = usage_data.get("total_tokens") or 0

    # Apply overrides if provided
    if prompt_tokens is not None:
        normalized["prompt_tokens"] = prompt_tokens
    if completion_tokens is not None:
        normalized["completion_tokens"] = completion_tokens
    if total_tokens is not None:
        normalized["total_tokens"] = total_tokens

    normalized["prompt_tokens"] = max(int(normalized["prompt_tokens"]), 0)
    normalized["completion_tokens"] = max(int(normalized["completion_tokens"]), 0)
    normalized["total_tokens"] = max(int(normalized["total_tokens"]), 0)

    # Ensure total_tokens is accurate (after conversion to int)
    if normalized["total_tokens"] == 0:
        normalized["total_tokens"] = normalized["prompt_tokens"] + normalized["completion_tokens"]

    return normalized


def _from_gemini(usage_data: Mapping[str, Any]) -> Dict[str, int]:
    prompt = int(usage_data.get("promptTokenCount") or 0)
    total = int(usage_data.get("totalTokenCount") or 0)
    thoughts = int(usage_data.get("thoughtsTokenCount") or 0)
    candidates = usage_data.get("candidatesTokenCount")
    if candidates is not None:
        completion = int(candidates) + thoughts
    else:
        completion = max(total - prompt, 0)
    if total == 0:
        total = prompt + completion
    return {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": total}


def to_token_usage(usage: Dict[str, Any]) -> TokenUsage:
    """Convert a normalized usage dict to a TokenUsage."""
    return TokenUsage.of(
        usage.get("prompt_tokens", 0),
        usage.get("completion_tokens", 0),
        usage.get("total_tokens", 0),
    )


def usage_to_dict(raw: Any) -> Optional[Dict[str, Any]]:
    """Turn a provider usage object (pydantic model, plain object, dict) into a dict."""
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        if hasattr(raw, "model_dump"):
            dumped = raw.model_dump()
            if isinstance(dumped, Mapping):
                return dict(dumped)
        return {k: v for k, v in vars(raw).items() if not k.startswith("_")}
    except Exception:
        return None


def _looks_like_usage(data: Mapping[str, Any]) -> bool:
    keys = (
        "prompt_tokens", "completion_tokens", "total_tokens",
        "input_tokens", "output_tokens",
        "promptTokenCount", "totalTokenCount", "thoughtsTokenCount",
    )
    return any(data.get(k) is not None for k in keys)


def extract_usage(result: Any, provider: str = "generic") -> Optional[TokenUsage]:
    """
    Pull token usage out of a completed (non-streaming) result.

    Accepts the usage payload itself or an object/dict carrying it under
    ``usage`` or ``usageMetadata``. Understands the generic
    ``{prompt_tokens, completion_tokens, total_tokens}`` shape, Anthropic's
    ``{input_tokens, output_tokens}`` and Gemini's
    ``{promptTokenCount, totalTokenCount, thoughtsTokenCount}``.

    Returns:
        TokenUsage, or None when nothing usage-like was found
    """
    if result is None:
        return None

    candidates = []
    if isinstance(result, Mapping):
        candidates.append(result)
        candidates.extend(result.get(key) for key in _USAGE_CONTAINERS)
    else:
        candidates.extend(getattr(result, key, None) for key in _USAGE_CONTAINERS)
        candidates.append(result)

    for candidate in candidates:
        data = usage_to_dict(candidate)
        if data and _looks_like_usage(data):
            if provider == "generic" and "input_tokens" in data and "prompt_tokens" not in data:
                provider = "anthropic"
            return to_token_usage(normalize_usage(data, provider))
    return None
