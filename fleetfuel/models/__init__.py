"""SQLAlchemy ORM models."""

from fleetfuel.models.account import Account
from fleetfuel.models.base import Base
from fleetfuel.models.refresh_token import RefreshToken

__all__ = ["Base", "Account", "RefreshToken"]
