from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.crm.constants import MIN_SEARCH_LENGTH, SEARCH_DEBOUNCE_SECONDS
from app.crm.db import db_session
from app.crm.models import User
from app.crm.modules.customers.service import (
    CUSTOMER_FIELDS,
    CustomerDraft,
    get_customer_by_id,
    list_units_for_customer,
    update_customer,
)
from app.crm.modules.jobs.service import DeleteConfirmation
from app.crm.modules.profiles.service import CustomerProfile, get_customer_profile, search_customers
from app.crm.rbac import require_admin, require_login
from app.crm.utils import IntakeValidationError

bp = Blueprint("profiles", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _load_profile(customer_id: int) -> CustomerProfile:
    # A failed or empty aggregate is a terminal "not found"; no retry.
    try:
        profile = get_customer_profile(db_session(), customer_id)
    except SQLAlchemyError as e:
        current_app.logger.warning("Profile fetch failed for customer %s: %s", customer_id, e)
        profile = None
    if profile is None:
        abort(404, description="Customer not found.")
    return profile


@bp.get("/profiles")
@require_login
def profiles_search():
    s = db_session()
    q = request.args.get("q") or ""
    results = search_customers(s, q) if len(q) >= MIN_SEARCH_LENGTH else []
    return render_template(
        "profiles/search.html",
        q=q,
        results=results,
        searched=len(q) >= MIN_SEARCH_LENGTH,
        min_search_length=MIN_SEARCH_LENGTH,
        debounce_ms=int(SEARCH_DEBOUNCE_SECONDS * 1000),
    )


@bp.get("/profiles/<int:customer_id>")
@require_login
def profile_detail(customer_id: int):
    profile = _load_profile(customer_id)
    armed = DeleteConfirmation(session).armed_ids()
    return render_template("profiles/detail.html", profile=profile, armed_job_ids=armed)


@bp.get("/profiles/<int:customer_id>.json")
@require_login
def profile_json(customer_id: int):
    return jsonify(_load_profile(customer_id).to_dict())


# ---------- Edit (admin) ----------
def _render_edit(customer, draft: CustomerDraft, status: int = 200):
    units = list_units_for_customer(db_session(), customer.id)
    return render_template("profiles/edit.html", customer=customer, draft=draft, units=units), status


@bp.get("/profiles/<int:customer_id>/edit")
@require_admin(redirect_endpoint="routes.dashboard")
def profile_edit_get(customer_id: int):
    c = get_customer_by_id(db_session(), customer_id)
    if not c:
        abort(404, description="Customer not found.")
    return _render_edit(c, CustomerDraft.from_customer(c))


@bp.post("/profiles/<int:customer_id>/edit")
@require_admin(redirect_endpoint="routes.dashboard")
def profile_edit_post(customer_id: int):
    s = db_session()
    c = get_customer_by_id(s, customer_id)
    if not c:
        abort(404, description="Customer not found.")

    draft = CustomerDraft(units=[])
    for name in CUSTOMER_FIELDS:
        draft.set_field(name, request.form.get(name))

    try:
        update_customer(s, c, draft, user=_current_user())
        s.commit()
    except IntakeValidationError as e:
        s.rollback()
        for err in e.errors:
            flash(err.message, "danger")
        return _render_edit(c, draft, 400)
    except SQLAlchemyError as e:
        s.rollback()
        current_app.logger.warning("Customer %s update failed: %s", customer_id, e)
        flash(str(e), "danger")
        return _render_edit(c, draft, 500)

    flash("Profile updated.", "success")
    return redirect(url_for("profiles.profile_detail", customer_id=c.id))
