"""Core app configuration, database and security primitives."""

from fleetfuel.core.config import Settings, get_settings
from fleetfuel.core.database import get_db

__all__ = ["Settings", "get_settings", "get_db"]
