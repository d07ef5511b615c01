"""Default administrator provisioning, run once at application startup."""

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from fleetfuel.core.security import AuthConfig
from fleetfuel.models import Account
from fleetfuel.schemas.auth import Role
from fleetfuel.services.auth import AuthService

if TYPE_CHECKING:
    from fleetfuel.core.config import Settings

logger = logging.getLogger(__name__)


def ensure_default_admin(db: Session, settings: "Settings", config: AuthConfig) -> bool:
    """
    Create the configured default admin when no admin account exists yet.

    Does nothing unless DEFAULT_ADMIN_EMAIL and DEFAULT_ADMIN_PASSWORD are both set.
    Returns True if an account was created. Idempotent: safe to run on every start.
    """
    if not settings.DEFAULT_ADMIN_EMAIL or settings.DEFAULT_ADMIN_PASSWORD is None:
        logger.info("No default admin configured; skipping.")
        return False

    admin_exists = (
        db.query(Account.id).filter(Account.role == Role.ADMIN.value).first() is not None
    )
    if admin_exists:
        logger.info("Admin account already exists; skipping default admin.")
        return False

    result = AuthService(db, config).register(
        email=settings.DEFAULT_ADMIN_EMAIL,
        password=settings.DEFAULT_ADMIN_PASSWORD.get_secret_value(),
        name=settings.DEFAULT_ADMIN_NAME,
        role=Role.ADMIN,
    )
    if not result.success:
        logger.error(
            "Failed to create default admin",
            extra={"code": result.code.value if result.code else None, "reason": result.error},
        )
        return False

    logger.warning(
        "Default admin created; change its password immediately",
        extra={"email": settings.DEFAULT_ADMIN_EMAIL},
    )
    return True
