from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import date, datetime
from itertools import zip_longest
from typing import TYPE_CHECKING, Any

from app.crm.audit import record_event
from app.crm.constants import MIN_JOB_DURATION_HOURS
from app.crm.modules.customers.models import Unit
from app.crm.modules.jobs.models import Job, JobItem
from app.crm.utils import IntakeValidationError, ValidationError, clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.models import User


JOB_FIELDS = ("work_date", "duration", "remarks")
ITEM_FIELDS = ("description", "products_used")


@dataclass
class JobItemDraft:
    description: str = ""
    products_used: str = ""

    def set(self, name: str, value: str | None) -> None:
        if name not in ITEM_FIELDS:
            raise KeyError(name)
        setattr(self, name, value or "")

    def is_valid(self) -> bool:
        # products_used alone does not make an item
        return bool(clean(self.description))


@dataclass
class JobDraft:
    customer_id: int | None = None
    unit_id: int | None = None
    work_date: str = ""
    duration: str = ""
    remarks: str = ""
    items: list[JobItemDraft] = field(default_factory=lambda: [JobItemDraft()])

    def set_field(self, name: str, value: str | None) -> None:
        if name not in JOB_FIELDS:
            raise KeyError(name)
        setattr(self, name, value or "")

    def add_item(self) -> JobItemDraft:
        item = JobItemDraft()
        self.items.append(item)
        return item

    def remove_item(self, index: int) -> None:
        if len(self.items) > 1 and 0 <= index < len(self.items):
            del self.items[index]

    def update_item(self, index: int, name: str, value: str | None) -> None:
        self.items[index].set(name, value)

    def valid_items(self) -> list[JobItemDraft]:
        return [i for i in self.items if i.is_valid()]

    def load_details(self, form: Any) -> None:
        """Copy job details and item rows from a submitted form."""
        for name in JOB_FIELDS:
            self.set_field(name, form.get(name))
        rows = zip_longest(
            form.getlist("item_description"),
            form.getlist("item_products_used"),
            fillvalue="",
        )
        items = []
        for description, products_used in rows:
            item = JobItemDraft()
            item.set("description", description)
            item.set("products_used", products_used)
            items.append(item)
        if items:
            self.items = items


@dataclass(frozen=True)
class JobItemSubmission:
    description: str
    products_used: str | None


@dataclass(frozen=True)
class JobSubmission:
    customer_id: int
    unit_id: int
    work_date: date
    duration_hours: float
    remarks: str | None
    items: tuple[JobItemSubmission, ...] = ()


def parse_work_date(raw: str | None) -> date | None:
    try:
        return date.fromisoformat(clean(raw))
    except ValueError:
        return None


def parse_duration(raw: str | None) -> float | None:
    try:
        hours = float(clean(raw))
    except ValueError:
        return None
    if hours != hours or hours < MIN_JOB_DURATION_HOURS:  # NaN or below minimum
        return None
    return hours


def validate_job_draft(draft: JobDraft) -> list[ValidationError]:
    """
    Selection and work items fail fast with a single message; job details are
    only checked once those are present.
    """
    if not draft.customer_id:
        return [ValidationError("customer_id", "Please select a customer")]
    if not draft.unit_id:
        return [ValidationError("unit_id", "Please select a unit")]
    if not draft.valid_items():
        return [ValidationError("items", "Please add at least one job item")]

    errs: list[ValidationError] = []
    if not clean(draft.work_date):
        errs.append(ValidationError("work_date", "Work date is required."))
    elif parse_work_date(draft.work_date) is None:
        errs.append(ValidationError("work_date", "Work date must be a valid date (YYYY-MM-DD)."))
    if parse_duration(draft.duration) is None:
        errs.append(ValidationError("duration", f"Duration must be a number of at least {MIN_JOB_DURATION_HOURS:g} hours."))
    return errs


def build_job_submission(draft: JobDraft) -> JobSubmission:
    errs = validate_job_draft(draft)
    if errs:
        raise IntakeValidationError(errs)
    return JobSubmission(
        customer_id=int(draft.customer_id),
        unit_id=int(draft.unit_id),
        work_date=parse_work_date(draft.work_date),
        duration_hours=parse_duration(draft.duration),
        remarks=clean(draft.remarks) or None,
        items=tuple(
            JobItemSubmission(description=clean(i.description), products_used=clean(i.products_used) or None)
            for i in draft.valid_items()
        ),
    )


def create_job_with_items(s: "Session", draft: JobDraft, *, user: "User") -> Job:
    """
    Validate the draft, then insert the job and its items in the caller's
    transaction. The caller commits.
    """
    sub = build_job_submission(draft)

    unit = s.get(Unit, sub.unit_id)
    if unit is None or unit.customer_id != sub.customer_id:
        raise IntakeValidationError(
            [ValidationError("unit_id", "Selected unit does not belong to the selected customer.")]
        )

    now = datetime.utcnow()
    job = Job(
        customer_id=sub.customer_id,
        unit_id=sub.unit_id,
        work_date=sub.work_date,
        duration_hours=sub.duration_hours,
        remarks=sub.remarks,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(job)
    s.flush()

    s.add_all(
        [
            JobItem(job_id=job.id, description=i.description, products_used=i.products_used, created_at=now)
            for i in sub.items
        ]
    )
    s.flush()

    record_event(
        s,
        actor=user,
        action="job.create",
        entity_type="Job",
        entity_id=str(job.id),
        metadata={
            "customer_id": sub.customer_id,
            "unit_id": sub.unit_id,
            "work_date": sub.work_date.isoformat(),
            "duration_hours": sub.duration_hours,
            "item_count": len(sub.items),
        },
    )
    return job


def delete_job(s: "Session", job: Job, *, user: "User") -> None:
    """Physical delete; job items go with it through the FK cascade."""
    record_event(
        s,
        actor=user,
        action="job.delete",
        entity_type="Job",
        entity_id=str(job.id),
        metadata={
            "customer_id": job.customer_id,
            "unit_id": job.unit_id,
            "work_date": job.work_date.isoformat() if job.work_date else None,
        },
    )
    s.delete(job)


class DeleteConfirmation:
    """
    Two-phase delete per job: idle -> confirming -> deleting -> idle.
    Cancel returns a confirming job to idle. State lives in ``store``
    (the Flask session in the app, a plain dict in tests).
    """

    IDLE = "idle"
    CONFIRMING = "confirming"
    DELETING = "deleting"

    def __init__(self, store: MutableMapping[str, Any], key: str = "job_delete_states"):
        self._store = store
        self._key = key

    def _states(self) -> dict[str, str]:
        return dict(self._store.get(self._key) or {})

    def _save(self, states: dict[str, str]) -> None:
        # Reassign so session-backed stores register the change.
        self._store[self._key] = states

    def state(self, job_id: int) -> str:
        return self._states().get(str(job_id), self.IDLE)

    def armed_ids(self) -> set[int]:
        return {int(k) for k, v in self._states().items() if v == self.CONFIRMING}

    def arm(self, job_id: int) -> bool:
        states = self._states()
        if states.get(str(job_id), self.IDLE) != self.IDLE:
            return False
        states[str(job_id)] = self.CONFIRMING
        self._save(states)
        return True

    def cancel(self, job_id: int) -> bool:
        states = self._states()
        if states.get(str(job_id)) != self.CONFIRMING:
            return False
        states.pop(str(job_id), None)
        self._save(states)
        return True

    def begin(self, job_id: int) -> bool:
        states = self._states()
        if states.get(str(job_id)) != self.CONFIRMING:
            return False
        states[str(job_id)] = self.DELETING
        self._save(states)
        return True

    def finish(self, job_id: int) -> None:
        states = self._states()
        states.pop(str(job_id), None)
        self._save(states)
