"""
Customer search and the profile aggregate.

Both are read-only procedures: callers consume the returned shapes and do not
depend on how matching or ordering is done here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.orm import selectinload

from app.crm.constants import MIN_SEARCH_LENGTH, SEARCH_RESULT_LIMIT
from app.crm.modules.customers.models import Customer, Unit
from app.crm.modules.customers.service import unit_count_subquery
from app.crm.modules.jobs.models import Job

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


@dataclass(frozen=True)
class CustomerSearchResult:
    id: int
    first_name: str
    last_name: str
    middle_initial: str | None
    email: str
    phone_number: str
    unit_count: int

    @property
    def display_name(self) -> str:
        mi = f"{self.middle_initial}. " if self.middle_initial else ""
        return f"{self.first_name} {mi}{self.last_name}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "middle_initial": self.middle_initial,
            "email": self.email,
            "phone_number": self.phone_number,
            "unit_count": self.unit_count,
            "display_name": self.display_name,
        }


def _to_result(c: Customer, unit_count: int | None) -> CustomerSearchResult:
    return CustomerSearchResult(
        id=c.id,
        first_name=c.first_name,
        last_name=c.last_name,
        middle_initial=c.middle_initial,
        email=c.email,
        phone_number=c.phone_number,
        unit_count=int(unit_count or 0),
    )


def search_customers(s: "Session", query: str, *, limit: int = SEARCH_RESULT_LIMIT) -> list[CustomerSearchResult]:
    """
    Every whitespace-separated term must match a name, email, phone number or
    one of the customer's plate numbers (case-insensitive substring).
    """
    terms = [t for t in (query or "").split() if t]
    if len((query or "").strip()) < MIN_SEARCH_LENGTH or not terms:
        return []

    counts = unit_count_subquery()
    conditions = []
    for term in terms:
        like = f"%{term}%"
        conditions.append(
            or_(
                Customer.first_name.ilike(like),
                Customer.last_name.ilike(like),
                Customer.email.ilike(like),
                Customer.phone_number.ilike(like),
                exists().where(and_(Unit.customer_id == Customer.id, Unit.plate_number.ilike(like))),
            )
        )

    rows = s.execute(
        select(Customer, counts.c.unit_count)
        .outerjoin(counts, Customer.id == counts.c.customer_id)
        .where(and_(*conditions))
        .order_by(func.lower(Customer.last_name), func.lower(Customer.first_name), Customer.id)
        .limit(limit)
    ).all()
    return [_to_result(c, n) for c, n in rows]


def get_search_result(s: "Session", customer_id: int) -> CustomerSearchResult | None:
    """Single customer in search-result shape (used when a selection arrives by id)."""
    c = s.get(Customer, customer_id)
    if c is None:
        return None
    n = s.execute(select(func.count(Unit.id)).where(Unit.customer_id == customer_id)).scalar_one()
    return _to_result(c, n)


@dataclass(frozen=True)
class UnitSnapshot:
    id: int
    brand: str
    model: str
    year: int
    plate_number: str

    @property
    def label(self) -> str:
        return f"{self.year} {self.brand} {self.model} ({self.plate_number})"


@dataclass(frozen=True)
class JobItemEntry:
    id: int
    description: str
    products_used: str | None


@dataclass(frozen=True)
class JobEntry:
    id: int
    work_date: date
    duration_hours: float
    remarks: str | None
    unit: UnitSnapshot
    items: tuple[JobItemEntry, ...]
    created_at: datetime


@dataclass(frozen=True)
class CustomerProfile:
    customer: Customer
    units: tuple[UnitSnapshot, ...]
    jobs: tuple[JobEntry, ...]

    def to_dict(self) -> dict[str, Any]:
        c = self.customer
        return {
            "customer": {
                "id": c.id,
                "first_name": c.first_name,
                "last_name": c.last_name,
                "middle_initial": c.middle_initial,
                "address": c.address,
                "phone_number": c.phone_number,
                "email": c.email,
                "created_at": c.created_at.isoformat() if c.created_at else None,
                "updated_at": c.updated_at.isoformat() if c.updated_at else None,
            },
            "units": [_unit_dict(u) for u in self.units],
            "jobs": [
                {
                    "id": j.id,
                    "work_date": j.work_date.isoformat(),
                    "duration_hours": j.duration_hours,
                    "remarks": j.remarks,
                    "unit": _unit_dict(j.unit),
                    "items": [
                        {"id": i.id, "description": i.description, "products_used": i.products_used}
                        for i in j.items
                    ],
                    "created_at": j.created_at.isoformat() if j.created_at else None,
                }
                for j in self.jobs
            ],
        }


def _unit_dict(u: UnitSnapshot) -> dict[str, Any]:
    return {"id": u.id, "brand": u.brand, "model": u.model, "year": u.year, "plate_number": u.plate_number}


def _snapshot(u: Unit) -> UnitSnapshot:
    return UnitSnapshot(id=u.id, brand=u.brand, model=u.model, year=u.year, plate_number=u.plate_number)


def get_customer_profile(s: "Session", customer_id: int) -> CustomerProfile | None:
    """
    Customer + units + jobs (newest work date first), each job with its unit
    and ordered items. None when the customer does not exist.
    """
    c = s.get(Customer, customer_id)
    if c is None:
        return None

    units = s.execute(
        select(Unit).where(Unit.customer_id == customer_id).order_by(Unit.created_at.asc(), Unit.id.asc())
    ).scalars().all()

    jobs = s.execute(
        select(Job)
        .where(Job.customer_id == customer_id)
        .options(selectinload(Job.unit), selectinload(Job.items))
        .order_by(Job.work_date.desc(), Job.created_at.desc(), Job.id.desc())
    ).scalars().all()

    entries = []
    for j in jobs:
        items = sorted(j.items, key=lambda i: (i.created_at, i.id))
        entries.append(
            JobEntry(
                id=j.id,
                work_date=j.work_date,
                duration_hours=j.duration_hours,
                remarks=j.remarks,
                unit=_snapshot(j.unit),
                items=tuple(JobItemEntry(id=i.id, description=i.description, products_used=i.products_used) for i in items),
                created_at=j.created_at,
            )
        )
    return CustomerProfile(customer=c, units=tuple(_snapshot(u) for u in units), jobs=tuple(entries))
