import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.constants import ROLE_ADMIN
from app.crm.db import build_engine
from app.crm.models import Base, User, UserRoleRecord
from scripts._db_utils import env_flag, resolve_database_url, script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin user and its admin role row in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@avmoto.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    db_url = resolve_database_url(database_url)

    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
            s.flush()

        record = s.get(UserRoleRecord, user.id)
        if record is None:
            s.add(UserRoleRecord(id=user.id, role=ROLE_ADMIN))
        elif record.role != ROLE_ADMIN:
            record.role = ROLE_ADMIN
            record.updated_at = datetime.utcnow()

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def create_tables(*, database_url: str | None = None) -> None:
    """Local development shortcut; deployments run Alembic instead."""
    engine = build_engine(resolve_database_url(database_url))
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()


def main() -> None:
    load_dotenv()
    if env_flag("INIT_DB_CREATE_TABLES"):
        create_tables()
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
