"""
Application configuration.

Settings come from environment variables (or a .env file). Mock mode runs the
API against an in-memory database.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
