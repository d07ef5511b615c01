"""ORM model for user accounts (credential store: password hash, lockout counters)."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from fleetfuel.models.base import Base


class Account(Base):
    """
    Account used for JWT authentication and role-based access control.

    role: 'admin', 'user' or 'viewer'. failed_login_attempts and locked_until
    carry the per-account lockout state; they are written only by AuthService.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user', 'viewer')", name="role"),
        CheckConstraint("failed_login_attempts >= 0", name="failed_login_attempts"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default="user", index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
