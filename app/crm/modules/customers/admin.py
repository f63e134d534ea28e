from __future__ import annotations

from flask import Blueprint, current_app, flash, g, render_template, request, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.crm.constants import SUCCESS_REDIRECT_DELAY_SECONDS
from app.crm.db import db_session
from app.crm.models import User
from app.crm.modules.customers.service import (
    CustomerDraft,
    create_customer_with_units,
    list_recent_customers,
    max_unit_year,
)
from app.crm.rbac import require_login
from app.crm.utils import IntakeValidationError, parse_row_action

bp = Blueprint("customers", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _render_form(draft: CustomerDraft, status: int = 200):
    return render_template("customers/new.html", draft=draft, max_year=max_unit_year()), status


@bp.get("/customers")
@require_login
def customers_list():
    s = db_session()
    try:
        page = max(int(request.args.get("page") or "1"), 1)
    except ValueError:
        page = 1
    per_page = 25
    rows, total = list_recent_customers(s, page=page, per_page=per_page)
    return render_template(
        "customers/list.html",
        rows=rows,
        page=page,
        total=total,
        has_prev=page > 1,
        has_next=page * per_page < total,
    )


@bp.get("/customers/new")
@require_login
def customers_new_get():
    return _render_form(CustomerDraft())


@bp.post("/customers/new")
@require_login
def customers_new_post():
    draft = CustomerDraft.from_form(request.form)
    verb, index = parse_row_action(request.form.get("action"))

    if verb == "add":
        draft.add_unit()
        return _render_form(draft)
    if verb == "remove" and index is not None:
        draft.remove_unit(index)
        return _render_form(draft)

    s = db_session()
    u = _current_user()
    try:
        c = create_customer_with_units(s, draft, user=u)
        s.commit()
    except IntakeValidationError as e:
        for err in e.errors:
            flash(err.message, "danger")
        return _render_form(draft, 400)
    except SQLAlchemyError as e:
        s.rollback()
        current_app.logger.warning("Customer create failed (request_id=%s): %s", getattr(g, "request_id", None), e)
        flash(str(e), "danger")
        return _render_form(draft, 500)

    current_app.logger.info("Customer %s created with %d unit(s)", c.id, len(c.units))
    return render_template(
        "success.html",
        title="Customer Created!",
        message=f"{c.display_name} was saved with {len(c.units)} unit(s).",
        next_url=url_for("customers.customers_list"),
        delay=SUCCESS_REDIRECT_DELAY_SECONDS,
    )
