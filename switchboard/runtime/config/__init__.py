"""Runtime configuration."""

from .settings import ConfigError, Settings

__all__ = ["ConfigError", "Settings"]
