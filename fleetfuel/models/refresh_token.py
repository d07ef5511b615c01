"""ORM model for issued refresh tokens (token store)."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from fleetfuel.models.base import Base


class RefreshToken(Base):
    """
    One row per issued refresh token. revoked_at is NULL while the token is active.

    Rows are soft-revoked, never deleted by the auth core; they go away only with
    their account (ON DELETE CASCADE).
    """

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token = Column(String(1024), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    account = relationship("Account", back_populates="refresh_tokens")
