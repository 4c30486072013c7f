"""Configuration for the AlertCPL service."""

from alertcpl.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
