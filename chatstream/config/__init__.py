"""Configuration for the completion runtime."""

from .settings import RuntimeSettings, load_settings

__all__ = ["RuntimeSettings", "load_settings"]
