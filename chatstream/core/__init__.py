"""Provider-agnostic helpers shared by every layer of the runtime.

- normalization: error, usage and log-argument normalization
"""

__all__ = []
