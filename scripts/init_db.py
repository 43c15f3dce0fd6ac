import os
import sys
from pathlib import Path

from sqlalchemy import select
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.fsvp.constants import ROLE_ADMIN
from app.fsvp.models import User
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@fsvp.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///fsvp.db").strip()

    # Use a direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        user = s.scalars(select(User).where(User.email == admin_email)).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                name=admin_name,
                role=ROLE_ADMIN,
                is_active=True,
            )
            s.add(user)
            created = True
        else:
            created = False

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email} ({'created' if created else 'already present'})")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
