"""Configuration: settings, constants, database handles."""

from paylink.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
