from __future__ import annotations

import os
from contextlib import contextmanager

from app.crm.config import load_settings
from app.crm.db import build_engine, make_sessionmaker


def resolve_database_url(database_url: str | None = None) -> str:
    return (database_url or load_settings().database_url).strip()


@contextmanager
def script_session(db_url: str):
    engine = build_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def env_flag(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in ("1", "true", "yes", "on")
