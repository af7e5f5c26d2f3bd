"""Seed the first admin account from SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD."""
import logging

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.user import User, UserRole
from app.services.auth import create_user

logger = logging.getLogger("uvicorn.error")


def seed_admin_user(db: Session) -> User | None:
    """Create the admin only when the users table is empty and both settings are present."""
    settings = get_settings()
    if not settings.seed_admin_email or not settings.seed_admin_password:
        return None
    if db.query(User).count() > 0:
        return None
    user = create_user(db, settings.seed_admin_email, settings.seed_admin_password, UserRole.admin, full_name="Administrator")
    db.commit()
    logger.info("Seeded admin user %s", user.email)
    return user
