"""Bootstrap the first admin profile.

    python -m portal.seed admin@example.com 'a-strong-password' --first-name Ada --last-name Admin
"""

import argparse

from sqlalchemy.orm import Session

from portal.core.database import SessionLocal
from portal.models.profile import Profile
from portal.services.auth import create_profile, get_profile_by_email, hash_password


def ensure_admin(
    db: Session,
    email: str,
    password: str,
    first_name: str = "Portal",
    last_name: str = "Admin",
) -> Profile:
    """Create an admin profile, or promote and re-password an existing one."""
    profile = get_profile_by_email(db, email)
    if profile is None:
        return create_profile(
            db,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=Profile.ROLE_ADMIN,
            approved=True,
        )

    profile.role = Profile.ROLE_ADMIN
    profile.approved = True
    profile.password_hash = hash_password(password)
    db.commit()
    db.refresh(profile)
    return profile


def seed_admin(email: str, password: str, first_name: str, last_name: str) -> Profile:
    db = SessionLocal()
    try:
        return ensure_admin(db, email, password, first_name, last_name)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create or promote a portal admin.")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--first-name", default="Portal")
    parser.add_argument("--last-name", default="Admin")
    args = parser.parse_args()

    admin = seed_admin(args.email, args.password, args.first_name, args.last_name)
    print(f"Admin ready: {admin.email} (id={admin.id})")
