"""
Database seeding for ZoguOne.
Creates the platform super admin and empty legal pages if the database is empty.
Organizations are not seeded: they come into existence through invitation codes.
"""

import os
import logging
from database.connection import get_db_session
from database.models import LegalContent, User
from services.content_service import LEGAL_KEYS
from services.users_repository import hash_password

logger = logging.getLogger(__name__)

DEFAULT_SUPER_ADMIN_EMAIL = "admin@zoguone.local"


def seed_super_admin(session, email=None, password=None):
    """Create the super admin account if none exists."""
    admin = session.query(User).filter_by(role='super_admin').first()
    if admin:
        logger.info(f"Super admin already exists: {admin.email}")
        return admin

    password = password or os.environ.get('SUPER_ADMIN_PASSWORD')
    if not password:
        raise RuntimeError("SUPER_ADMIN_PASSWORD must be set to seed the super admin")

    admin = User(
        org_id=None,
        email=(email or os.environ.get('SUPER_ADMIN_EMAIL') or DEFAULT_SUPER_ADMIN_EMAIL).strip().lower(),
        full_name="Super Admin",
        role='super_admin',
        password_hash=hash_password(password),
        is_active=True,
    )
    session.add(admin)
    session.flush()
    logger.info(f"Created super admin: {admin.email}")
    return admin


def seed_legal_pages(session):
    """Insert empty AGB / Datenschutz rows so they can be edited."""
    created = 0
    for key in LEGAL_KEYS:
        if session.get(LegalContent, key) is None:
            session.add(LegalContent(key=key, content_de='', content_al=''))
            created += 1
    session.flush()
    return created


def seed_database(email=None, password=None):
    """
    Seed the database with default data if empty.
    Run once after 'alembic upgrade head'.
    """
    try:
        with get_db_session() as session:
            seed_super_admin(session, email, password)
            seed_legal_pages(session)
        logger.info("Database seeding completed successfully")
        return True
    except Exception as e:
        logger.error(f"Database seeding failed: {e}")
        raise


if __name__ == '__main__':
    from database.connection import configure_database
    logging.basicConfig(level=logging.INFO)
    configure_database()
    seed_database()
