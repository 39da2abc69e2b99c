"""
Runtime constants.

Markers and defaults used by the middleware stages and the orchestrator.
Override the tunable ones through environment variables (see settings.py).
"""

# Default per-request timeout (milliseconds)
DEFAULT_TIMEOUT_MS = 60_000

# Sentinel some backends put inside reasoning text when it was withheld
DEFAULT_REASONING_MARKER = "[REDACTED]"

# Qwen3-style thinking toggles appended to the last user message
NO_THINK_SUFFIX = " /no_think"
THINK_SUFFIX = " /think"
DEFAULT_SUFFIX_MODEL_PATTERN = "qwen3"

# Value accepted by backends in place of a real thought signature
THOUGHT_SIGNATURE_FIELD = "thought_signature"
THOUGHT_SIGNATURE_PLACEHOLDER = "skip_thought_signature_validator"

# Spelling of "no limit" for CHATSTREAM_TOPIC_CONCURRENCY
UNBOUNDED = "unbounded"

# Environment variable names
ENV_TIMEOUT_MS = "CHATSTREAM_TIMEOUT_MS"
ENV_TOPIC_CONCURRENCY = "CHATSTREAM_TOPIC_CONCURRENCY"
ENV_LOG_LEVEL = "CHATSTREAM_LOG_LEVEL"
ENV_REASONING_MARKER = "CHATSTREAM_REASONING_MARKER"
