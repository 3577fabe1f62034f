"""Configuration module: settings."""

from imgharvest.config.settings import ScraperSettings

__all__ = ["ScraperSettings"]
