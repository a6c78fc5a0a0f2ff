import logging

from backoffice.core.config import settings
from backoffice.db.session import engine, SessionLocal
from backoffice.models import Base, User
from backoffice.services.roles import Role

logger = logging.getLogger(__name__)


def create_tables():
    """Local runs without Alembic (SQLite, tests)."""
    Base.metadata.create_all(bind=engine)


def seed_site_admin():
    """Idempotently ensure the configured site admin exists (dev only).

    The identity provider owns credentials; we only need a users row whose
    external_id matches the provider subject so the first admin can sign in.
    """
    if not settings.seed_admin_email or not settings.seed_admin_external_id:
        return
    email = settings.seed_admin_email.strip().lower()
    db = SessionLocal()
    try:
        user = db.query(User).filter(
            (User.external_id == settings.seed_admin_external_id) | (User.email == email)
        ).first()
        if user:
            if user.role != Role.SITE_ADMIN.value:
                logger.warning("Seed admin %s exists with role %s; leaving it unchanged", email, user.role)
            return
        db.add(
            User(
                external_id=settings.seed_admin_external_id,
                email=email,
                role=Role.SITE_ADMIN.value,
                is_active=True,
                first_name="Site",
                last_name="Admin",
                profile_completed=True,
            )
        )
        db.commit()
        logger.info("Seeded site admin %s", email)
    finally:
        db.close()
