"""
Script to create the first admin account from FIRST_ADMIN_EMAIL / FIRST_ADMIN_PASSWORD
"""
import logging

from app.core import config
from app.core.database import SessionLocal, engine, Base
from app.core.security import get_password_hash
from app.models import tables

logger = logging.getLogger(__name__)


def create_admin(email: str = None, password: str = None) -> tables.User:
    """Create the admin if missing; running it again changes nothing"""
    email = (email or config.FIRST_ADMIN_EMAIL).strip().lower()
    password = password or config.FIRST_ADMIN_PASSWORD

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        existing_user = db.query(tables.User).filter(tables.User.email == email).first()
        if existing_user:
            print(f"✓ Admin {email} already exists")
            return existing_user

        user = tables.User(
            name="Admin",
            surname="Administrator",
            email=email,
            password_hash=get_password_hash(password),
            role="admin",
            is_active=True,
            email_verified=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        print(f"✓ Created admin: {email}")
        print("\n⚠️  IMPORTANT: Change this password in production!")
        return user
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create admin {email}: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    create_admin()
