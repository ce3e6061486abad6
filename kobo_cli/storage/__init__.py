"""
Storage Layer.

This package handles persistence: the configuration file that also holds
the session, and the registry of temporary download files.
"""

from .config_manager import ConfigManager

__all__ = ["ConfigManager"]
