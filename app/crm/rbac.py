"""
Role gate.

Roles come from the ``user_roles`` table and are looked up on every call.
No identity, no row, an unknown role value or a lookup error all resolve to
``None`` so the caller renders the least-privileged state.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, current_app, g, redirect, request, url_for
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.crm.constants import ROLE_ADMIN, VALID_ROLES
from app.crm.db import db_session
from app.crm.models import User, UserRoleRecord


def get_user_role(user: User | None) -> str | None:
    if not user or not user.is_active:
        return None
    try:
        role = db_session().execute(
            select(UserRoleRecord.role).where(UserRoleRecord.id == user.id)
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        current_app.logger.warning("Role lookup failed for user_id=%s: %s", user.id, e)
        return None
    if role not in VALID_ROLES:
        return None
    return role


def current_role() -> str | None:
    return get_user_role(getattr(g, "current_user", None))


def is_admin() -> bool:
    return current_role() == ROLE_ADMIN


def _login_redirect():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return _login_redirect()
        return fn(*args, **kwargs)

    return wrapped


def require_admin(redirect_endpoint: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Unauthenticated -> login. Authenticated non-admin -> redirect to
    ``redirect_endpoint`` when given, otherwise 403.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return _login_redirect()
            if get_user_role(user) != ROLE_ADMIN:
                g.missing_role = ROLE_ADMIN
                if redirect_endpoint:
                    return redirect(url_for(redirect_endpoint))
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
