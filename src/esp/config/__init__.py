"""Configuration package."""

from esp.config.settings import Settings

__all__ = ["Settings"]
