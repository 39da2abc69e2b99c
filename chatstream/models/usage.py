"""Token usage model shared by chunks, trace handlers and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class TokenUsage:
    """Prompt/completion/total token counts for one model invocation.

    Values are non-negative. Within a stream, successive snapshots are merged
    with :meth:`merge_max` so totals never decrease.
    """
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self):
        for name in ("prompt_tokens", "completion_tokens", "total_tokens"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

    @classmethod
    def of(cls, prompt_tokens: int = 0, completion_tokens: int = 0,
           total_tokens: int = 0) -> TokenUsage:
        """Build usage, deriving total_tokens when the provider omitted it."""
        prompt_tokens = int(prompt_tokens or 0)
        completion_tokens = int(completion_tokens or 0)
        total_tokens = int(total_tokens or 0)
        if total_tokens == 0:
            total_tokens = prompt_tokens + completion_tokens
        return cls(prompt_tokens, completion_tokens, total_tokens)

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
            self.total_tokens + other.total_tokens,
        )

    def merge_max(self, other: TokenUsage) -> TokenUsage:
        """Combine two cumulative snapshots of the same stream."""
        prompt = max(self.prompt_tokens, other.prompt_tokens)
        completion = max(self.completion_tokens, other.completion_tokens)
        return TokenUsage(prompt, completion, max(self.total_tokens, other.total_tokens, prompt + completion))

    def is_empty(self) -> bool:
        return self.total_tokens == 0 and self.prompt_tokens == 0 and self.completion_tokens == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }
