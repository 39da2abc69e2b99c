"""
Runtime settings.

Values come from the environment (optionally a ``.env`` file loaded through
python-dotenv) and are validated by pydantic.
"""

import os
from typing import Literal, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_REASONING_MARKER,
    DEFAULT_TIMEOUT_MS,
    ENV_LOG_LEVEL,
    ENV_REASONING_MARKER,
    ENV_TIMEOUT_MS,
    ENV_TOPIC_CONCURRENCY,
    UNBOUNDED,
)

_dotenv_loaded = False


class RuntimeSettings(BaseModel):
    """Settings for the orchestrator and its collaborators.

    ``topic_concurrency`` is ``None`` until someone configures it. The
    string ``"unbounded"`` is the explicit way to ask for no limit.
    """
    default_timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, ge=0)
    topic_concurrency: Union[int, Literal["unbounded"], None] = None
    log_level: str = "WARNING"
    reasoning_marker: str = DEFAULT_REASONING_MARKER

    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    @field_validator("topic_concurrency")
    @classmethod
    def _check_concurrency(cls, value):
        if isinstance(value, int) and value < 1:
            raise ValueError("topic_concurrency must be >= 1 or 'unbounded'")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def concurrency_configured(self) -> bool:
        return self.topic_concurrency is not None

    def queue_concurrency(self) -> Optional[int]:
        """Concurrency to hand to the topic queue registry.

        Returns:
            An int >= 1, or None for explicitly unbounded topics

        Raises:
            ValueError: If topic_concurrency was never configured
        """
        if self.topic_concurrency is None:
            raise ValueError(
                f"topic_concurrency is not configured; set {ENV_TOPIC_CONCURRENCY} "
                f"to an integer >= 1 or '{UNBOUNDED}'"
            )
        if self.topic_concurrency == UNBOUNDED:
            return None
        return self.topic_concurrency


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> RuntimeSettings:
    """
    Build settings from environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ``. When omitted the
            process environment is used and ``.env`` is loaded once.

    Returns:
        Validated RuntimeSettings

    Raises:
        ValueError: On malformed integers or out-of-range values
    """
    global _dotenv_loaded
    if environ is None:
        if not _dotenv_loaded:
            load_dotenv()
            _dotenv_loaded = True
        environ = os.environ

    values = {}

    timeout = environ.get(ENV_TIMEOUT_MS)
    if timeout:
        values["default_timeout_ms"] = _parse_int(ENV_TIMEOUT_MS, timeout)

    concurrency = environ.get(ENV_TOPIC_CONCURRENCY)
    if concurrency:
        if concurrency.strip().lower() == UNBOUNDED:
            values["topic_concurrency"] = UNBOUNDED
        else:
            values["topic_concurrency"] = _parse_int(ENV_TOPIC_CONCURRENCY, concurrency)

    if environ.get(ENV_LOG_LEVEL):
        values["log_level"] = environ[ENV_LOG_LEVEL]
    if environ.get(ENV_REASONING_MARKER):
        values["reasoning_marker"] = environ[ENV_REASONING_MARKER]

    values["openai_api_key"] = environ.get("OPENAI_API_KEY")
    values["openai_base_url"] = environ.get("OPENAI_BASE_URL")
    values["anthropic_api_key"] = environ.get("ANTHROPIC_API_KEY")

    # pydantic's ValidationError is a ValueError subclass
    return RuntimeSettings(**values)
