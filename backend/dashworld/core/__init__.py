"""Core module for configuration and utilities."""

from dashworld.core.config import settings
from dashworld.core.database import Base, get_db

__all__ = [
    "settings",
    "Base",
    "get_db",
]
