"""
Deploy step for AV Moto CRM: bring the schema to head, then make sure the
shop's admin account and its `user_roles` row exist.

Settings come from the same loader the web app uses, so a production deploy
stops here on a missing/SQLite DATABASE_URL or a default SECRET_KEY rather
than at the first request.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def release_database_url() -> str:
    from app.crm.config import check_production_settings, load_settings

    settings = load_settings()
    check_production_settings(settings)
    return settings.database_url


def upgrade_schema(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release() -> None:
    db_url = release_database_url()
    print(f"[release] schema upgrade on {db_url.split('://', 1)[0]}", flush=True)
    upgrade_schema(db_url)

    from scripts import init_db

    print("[release] ensuring admin user and role", flush=True)
    init_db.seed_only(database_url=db_url)
    print("[release] done", flush=True)


if __name__ == "__main__":
    run_release()
