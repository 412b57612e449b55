"""Configuration for healthtrack: pydantic settings and logging setup."""

from .logging_setup import setup_logging
from .settings import Settings, settings

__all__ = ["Settings", "settings", "setup_logging"]
