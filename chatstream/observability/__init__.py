"""Logging helpers for the completion runtime."""

from .logging import ProviderLogger, configure_logging

__all__ = ["ProviderLogger", "configure_logging"]
