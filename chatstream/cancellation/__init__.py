"""Cooperative cancellation and timeouts."""

from .controller import AbortReason, AbortSignal, StreamAbortController
from .registry import AbortRegistry

__all__ = ["AbortReason", "AbortSignal", "StreamAbortController", "AbortRegistry"]
