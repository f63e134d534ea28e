from __future__ import annotations

from typing import Any

from flask import Blueprint, abort, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.crm.constants import MIN_SEARCH_LENGTH, SEARCH_DEBOUNCE_SECONDS, SUCCESS_REDIRECT_DELAY_SECONDS
from app.crm.db import db_session
from app.crm.models import User
from app.crm.modules.customers.service import list_units_for_customer
from app.crm.modules.jobs.intake import JobIntake
from app.crm.modules.jobs.models import Job
from app.crm.modules.jobs.service import DeleteConfirmation, create_job_with_items, delete_job
from app.crm.modules.profiles.service import get_search_result, search_customers
from app.crm.rbac import require_admin, require_login
from app.crm.utils import IntakeValidationError, parse_row_action

bp = Blueprint("jobs", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _int_or_none(raw: Any) -> int | None:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def _build_intake(s, source) -> JobIntake:
    """
    Rebuild intake state from request parameters: a customer id means a locked
    selection (units fetched, single unit auto-selected); otherwise the query
    text drives a search.
    """
    intake = JobIntake()
    customer_id = _int_or_none(source.get("customer_id"))
    if customer_id is not None:
        result = get_search_result(s, customer_id)
        if result is None:
            flash("Customer not found.", "danger")
            return intake
        fetch = intake.select_customer(result)
        intake.load_units(fetch, lambda cid: list_units_for_customer(s, cid))
        unit_id = _int_or_none(source.get("unit_id"))
        if unit_id is not None and not intake.select_unit(unit_id):
            intake.select_unit(None)
            flash("Selected unit does not belong to this customer.", "danger")
        return intake

    q = source.get("q") or ""
    if q:
        intake.change_query(q)
        intake.run_search(lambda text: search_customers(s, text), force=True)
    return intake


def _render_form(intake: JobIntake, status: int = 200):
    return (
        render_template(
            "jobs/create.html",
            intake=intake,
            min_search_length=MIN_SEARCH_LENGTH,
            debounce_ms=int(SEARCH_DEBOUNCE_SECONDS * 1000),
        ),
        status,
    )


@bp.get("/jobs/new")
@require_login
def jobs_new_get():
    s = db_session()
    return _render_form(_build_intake(s, request.args))


@bp.post("/jobs/new")
@require_login
def jobs_new_post():
    s = db_session()
    intake = _build_intake(s, request.form)
    intake.draft.load_details(request.form)

    verb, index = parse_row_action(request.form.get("action"))
    if verb == "add":
        intake.draft.add_item()
        return _render_form(intake)
    if verb == "remove" and index is not None:
        intake.draft.remove_item(index)
        return _render_form(intake)

    u = _current_user()
    try:
        job = create_job_with_items(s, intake.draft, user=u)
        s.commit()
    except IntakeValidationError as e:
        for err in e.errors:
            flash(err.message, "danger")
        return _render_form(intake, 400)
    except SQLAlchemyError as e:
        s.rollback()
        current_app.logger.warning("Job create failed (request_id=%s): %s", getattr(g, "request_id", None), e)
        flash(str(e), "danger")
        return _render_form(intake, 500)

    current_app.logger.info("Job %s created for customer %s", job.id, job.customer_id)
    return render_template(
        "success.html",
        title="Job Created!",
        message=f"Job for {intake.customer.display_name} saved.",
        next_url=url_for("routes.dashboard"),
        delay=SUCCESS_REDIRECT_DELAY_SECONDS,
    )


@bp.get("/jobs/customer-search")
@require_login
def customer_search_json():
    """Live search endpoint; ``seq`` is echoed so the browser can drop stale responses."""
    s = db_session()
    q = request.args.get("q") or ""
    seq = _int_or_none(request.args.get("seq")) or 0
    results = search_customers(s, q) if len(q) >= MIN_SEARCH_LENGTH else []
    return jsonify({"seq": seq, "query": q, "results": [r.to_dict() for r in results]})


@bp.get("/jobs/customers/<int:customer_id>/units")
@require_login
def customer_units_json(customer_id: int):
    s = db_session()
    units = list_units_for_customer(s, customer_id)
    return jsonify({"customer_id": customer_id, "units": [u.to_dict() for u in units]})


# ---------- Delete (admin, two-phase) ----------
def _job_or_404(s, job_id: int) -> Job:
    job = s.get(Job, job_id)
    if not job:
        abort(404, description="Job not found.")
    return job


def _back_to_profile(customer_id: int):
    return redirect(url_for("profiles.profile_detail", customer_id=customer_id))


@bp.post("/jobs/<int:job_id>/delete")
@require_admin()
def job_delete_arm(job_id: int):
    s = db_session()
    job = _job_or_404(s, job_id)
    DeleteConfirmation(session).arm(job.id)
    return _back_to_profile(job.customer_id)


@bp.post("/jobs/<int:job_id>/delete/cancel")
@require_admin()
def job_delete_cancel(job_id: int):
    s = db_session()
    job = _job_or_404(s, job_id)
    DeleteConfirmation(session).cancel(job.id)
    return _back_to_profile(job.customer_id)


@bp.post("/jobs/<int:job_id>/delete/confirm")
@require_admin()
def job_delete_confirm(job_id: int):
    s = db_session()
    job = _job_or_404(s, job_id)
    customer_id = job.customer_id
    confirmation = DeleteConfirmation(session)
    if not confirmation.begin(job.id):
        flash("Click Delete first, then Confirm.", "warning")
        return _back_to_profile(customer_id)

    try:
        delete_job(s, job, user=_current_user())
        s.commit()
        flash("Job deleted.", "success")
    except SQLAlchemyError as e:
        s.rollback()
        current_app.logger.error("Error deleting job %s: %s", job_id, e)
        flash(f"Failed to delete job: {e}", "danger")
    finally:
        confirmation.finish(job_id)
    return _back_to_profile(customer_id)
