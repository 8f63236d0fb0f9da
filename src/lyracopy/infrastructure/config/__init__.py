"""Configuration package."""

from lyracopy.infrastructure.config.loader import ConfigLoader, LyraCopyConfig

__all__ = ["ConfigLoader", "LyraCopyConfig"]
