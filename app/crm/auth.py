"""
Sign-in for shop staff.

Identity is a ``User`` row with a werkzeug password hash; the signed Flask
session carries only the user id. What a signed-in user may do is decided by
the role gate (``app.crm.rbac``), not here.
"""

from __future__ import annotations

import time
import uuid
from collections import defaultdict, deque
from collections.abc import Callable

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash

from app.crm.audit import record_event
from app.crm.db import db_session
from app.crm.models import User
from app.crm.security import is_unguarded_path

bp = Blueprint("auth", __name__)


class LoginThrottle:
    """At most ``limit`` attempts per key inside a sliding ``window`` (seconds)."""

    def __init__(self, limit: int = 5, window: float = 300, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def _prune(self, key: str) -> deque[float]:
        hits = self._hits[key]
        cutoff = self._clock() - self.window
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def blocked(self, key: str) -> bool:
        return len(self._prune(key)) >= self.limit

    def hit(self, key: str) -> None:
        self._prune(key).append(self._clock())

    def reset(self, key: str) -> None:
        self._hits.pop(key, None)


throttle = LoginThrottle()


def safe_next(raw: str | None) -> str | None:
    """Only local paths are followed after login."""
    nxt = (raw or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def authenticate(s, email: str, password: str) -> User | None:
    user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        return None
    return user


def load_current_user() -> None:
    """
    Sets ``g.current_user`` from the session cookie and a per-request
    ``g.request_id`` for log and audit correlation.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if is_unguarded_path(request.path):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        user = db_session().get(User, int(user_id))
    except (SQLAlchemyError, ValueError) as e:
        current_app.logger.error("load_current_user failed (clearing session): %s", e)
        user = None
    if not user or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


@bp.get("/login")
def login_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("routes.dashboard"))
    return render_template("auth/login.html", next=(request.args.get("next") or "").strip())


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = safe_next(request.form.get("next"))
    ip = request.remote_addr or "unknown"

    if throttle.blocked(ip):
        current_app.logger.warning("Login throttled for %s", ip)
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    throttle.hit(ip)

    s = db_session()
    user = authenticate(s, email, password)
    if user is None:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
        )
        s.commit()
        flash("Invalid login credentials.", "danger")
        return redirect(url_for("auth.login_get", next=nxt) if nxt else url_for("auth.login_get"))

    session.clear()
    session["user_id"] = user.id
    throttle.reset(ip)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Login user_id=%s request_id=%s", user.id, g.request_id)
    return redirect(nxt or url_for("routes.dashboard"))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return redirect(url_for("auth.login_get"))
