#!/usr/bin/env python3
"""
Container entry point: run the release step, then hand the process over to
gunicorn serving `app.crm.wsgi:app`.

Usage:
    PORT=8080 WEB_CONCURRENCY=2 python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080
DEFAULT_WORKERS = 2


def listen_port(raw: str | None) -> int:
    raw = (raw or "").strip()
    if not raw:
        return DEFAULT_PORT
    port = int(raw)
    if not 1 <= port <= 65535:
        raise ValueError(f"PORT out of range: {port}")
    return port


def gunicorn_argv(port: int, workers: str | None = None) -> list[str]:
    return [
        "gunicorn",
        "app.crm.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", (workers or "").strip() or str(DEFAULT_WORKERS),
        "--timeout", "60",
        # Engine is disposed in each worker after fork (see create_app).
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    try:
        port = listen_port(os.environ.get("PORT"))
    except ValueError as e:
        print(f"[start] invalid PORT: {e}", flush=True)
        sys.exit(1)

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"[start] release failed, not starting: {e}", flush=True)
        sys.exit(1)

    argv = gunicorn_argv(port, os.environ.get("WEB_CONCURRENCY"))
    print(f"[start] {' '.join(argv)}", flush=True)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
