"""
Session CSRF token and the request policy around it.

Every state-changing request carries the token either as the ``csrf_token``
form field (server-rendered forms) or the ``X-CSRF-Token`` header (scripted
requests). Login/logout and probe paths are exempt.
"""

import secrets

from flask import Request, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
UNGUARDED_PATH_PREFIXES = ("/static/", "/health")
EXEMPT_BLUEPRINTS = frozenset({"auth"})


def ensure_csrf_token() -> str:
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def is_unguarded_path(path: str) -> bool:
    return path.startswith(UNGUARDED_PATH_PREFIXES)


def csrf_required(req: Request) -> bool:
    if req.method not in STATE_CHANGING_METHODS or is_unguarded_path(req.path):
        return False
    return req.blueprint not in EXEMPT_BLUEPRINTS


def validate_csrf(req: Request) -> bool:
    token = req.headers.get(CSRF_HEADER) or req.form.get(CSRF_SESSION_KEY)
    expected = session.get(CSRF_SESSION_KEY)
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))
