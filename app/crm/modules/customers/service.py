"""
Customer intake.

A customer is always created together with at least one motorcycle unit.
The form is modelled as a mutable ``CustomerDraft`` (one setter per field,
add/remove/update for unit rows). At submit time the draft is validated and
frozen into a ``CustomerSubmission``; only then is the database touched.

Unit rows with any of brand/model/year/plate blank are dropped silently.
Customer and units are written in the caller's transaction, so a failure on
the unit insert rolls the customer back as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from itertools import zip_longest
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.crm.audit import changed_fields, record_event
from app.crm.constants import MIN_UNIT_YEAR
from app.crm.modules.customers.models import Customer, Unit
from app.crm.utils import IntakeValidationError, ValidationError, clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.models import User


CUSTOMER_FIELDS = ("first_name", "last_name", "middle_initial", "address", "phone_number", "email")
REQUIRED_CUSTOMER_FIELDS = {
    "first_name": "First name is required.",
    "last_name": "Last name is required.",
    "address": "Address is required.",
    "phone_number": "Phone number is required.",
    "email": "Email is required.",
}
UNIT_FIELDS = ("brand", "model", "year", "plate_number")
NO_COMPLETE_UNIT_MESSAGE = "Please add at least one complete motorcycle unit"


@dataclass
class UnitDraft:
    brand: str = ""
    model: str = ""
    year: str = ""
    plate_number: str = ""

    def set(self, name: str, value: str | None) -> None:
        if name not in UNIT_FIELDS:
            raise KeyError(name)
        value = value or ""
        if name == "plate_number":
            value = value.upper()
        setattr(self, name, value)

    def is_complete(self) -> bool:
        return all(clean(getattr(self, f)) for f in UNIT_FIELDS)


@dataclass
class CustomerDraft:
    first_name: str = ""
    last_name: str = ""
    middle_initial: str = ""
    address: str = ""
    phone_number: str = ""
    email: str = ""
    units: list[UnitDraft] = field(default_factory=lambda: [UnitDraft()])

    def set_field(self, name: str, value: str | None) -> None:
        if name not in CUSTOMER_FIELDS:
            raise KeyError(name)
        value = value or ""
        if name == "middle_initial":
            value = value.strip()[:1]
        setattr(self, name, value)

    def add_unit(self) -> UnitDraft:
        u = UnitDraft()
        self.units.append(u)
        return u

    def remove_unit(self, index: int) -> None:
        # The form always keeps at least one unit row.
        if len(self.units) > 1 and 0 <= index < len(self.units):
            del self.units[index]

    def update_unit(self, index: int, name: str, value: str | None) -> None:
        self.units[index].set(name, value)

    def complete_units(self) -> list[UnitDraft]:
        return [u for u in self.units if u.is_complete()]

    @classmethod
    def from_form(cls, form: Any) -> "CustomerDraft":
        draft = cls()
        for name in CUSTOMER_FIELDS:
            draft.set_field(name, form.get(name))
        rows = zip_longest(
            form.getlist("unit_brand"),
            form.getlist("unit_model"),
            form.getlist("unit_year"),
            form.getlist("unit_plate_number"),
            fillvalue="",
        )
        units = []
        for brand, model, year, plate in rows:
            u = UnitDraft()
            u.set("brand", brand)
            u.set("model", model)
            u.set("year", year)
            u.set("plate_number", plate)
            units.append(u)
        if units:
            draft.units = units
        return draft

    @classmethod
    def from_customer(cls, c: Customer) -> "CustomerDraft":
        draft = cls(units=[])
        for name in CUSTOMER_FIELDS:
            draft.set_field(name, getattr(c, name))
        return draft


@dataclass(frozen=True)
class UnitSubmission:
    brand: str
    model: str
    year: int
    plate_number: str


@dataclass(frozen=True)
class CustomerSubmission:
    first_name: str
    last_name: str
    middle_initial: str | None
    address: str
    phone_number: str
    email: str
    units: tuple[UnitSubmission, ...] = ()


def max_unit_year() -> int:
    return date.today().year + 1


def parse_unit_year(raw: str | None) -> int | None:
    try:
        year = int(clean(raw))
    except ValueError:
        return None
    if year < MIN_UNIT_YEAR or year > max_unit_year():
        return None
    return year


def validate_customer_fields(draft: CustomerDraft) -> list[ValidationError]:
    errs: list[ValidationError] = []
    for name, message in REQUIRED_CUSTOMER_FIELDS.items():
        if not clean(getattr(draft, name)):
            errs.append(ValidationError(name, message))
    email = clean(draft.email)
    if email and "@" not in email:
        errs.append(ValidationError("email", "Email must be a valid email address."))
    return errs


def validate_customer_draft(draft: CustomerDraft) -> list[ValidationError]:
    errs = validate_customer_fields(draft)
    complete = draft.complete_units()
    if not complete:
        errs.append(ValidationError("units", NO_COMPLETE_UNIT_MESSAGE))
    for i, u in enumerate(draft.units, start=1):
        if u.is_complete() and parse_unit_year(u.year) is None:
            errs.append(
                ValidationError(
                    f"units[{i}].year",
                    f"Unit {i}: year must be a whole number between {MIN_UNIT_YEAR} and {max_unit_year()}.",
                )
            )
    return errs


def build_customer_submission(draft: CustomerDraft) -> CustomerSubmission:
    errs = validate_customer_draft(draft)
    if errs:
        raise IntakeValidationError(errs)
    return CustomerSubmission(
        first_name=clean(draft.first_name),
        last_name=clean(draft.last_name),
        middle_initial=clean(draft.middle_initial) or None,
        address=clean(draft.address),
        phone_number=clean(draft.phone_number),
        email=clean(draft.email),
        units=tuple(
            UnitSubmission(
                brand=clean(u.brand),
                model=clean(u.model),
                year=int(clean(u.year)),
                plate_number=clean(u.plate_number).upper(),
            )
            for u in draft.complete_units()
        ),
    )


def create_customer_with_units(s: "Session", draft: CustomerDraft, *, user: "User | None") -> Customer:
    """
    Validate the draft, then insert the customer and its complete units.
    Nothing is written when validation fails. The caller commits.
    """
    sub = build_customer_submission(draft)
    now = datetime.utcnow()
    c = Customer(
        first_name=sub.first_name,
        last_name=sub.last_name,
        middle_initial=sub.middle_initial,
        address=sub.address,
        phone_number=sub.phone_number,
        email=sub.email,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id if user else None,
    )
    s.add(c)
    s.flush()

    units = [
        Unit(
            customer_id=c.id,
            brand=u.brand,
            model=u.model,
            year=u.year,
            plate_number=u.plate_number,
            created_at=now,
            updated_at=now,
        )
        for u in sub.units
    ]
    s.add_all(units)
    s.flush()

    record_event(
        s,
        actor=user,
        action="customer.create",
        entity_type="Customer",
        entity_id=str(c.id),
        metadata={
            "name": c.display_name,
            "unit_ids": [u.id for u in units],
            "plates": [u.plate_number for u in units],
        },
    )
    return c


def update_customer(s: "Session", c: Customer, draft: CustomerDraft, *, user: "User") -> Customer:
    errs = validate_customer_fields(draft)
    if errs:
        raise IntakeValidationError(errs)

    before = {name: getattr(c, name) for name in CUSTOMER_FIELDS}

    c.first_name = clean(draft.first_name)
    c.last_name = clean(draft.last_name)
    c.middle_initial = clean(draft.middle_initial) or None
    c.address = clean(draft.address)
    c.phone_number = clean(draft.phone_number)
    c.email = clean(draft.email)
    c.updated_at = datetime.utcnow()

    after = {name: getattr(c, name) for name in CUSTOMER_FIELDS}
    record_event(
        s,
        actor=user,
        action="customer.update",
        entity_type="Customer",
        entity_id=str(c.id),
        metadata=changed_fields(before, after),
    )
    return c


def get_customer_by_id(s: "Session", customer_id: int) -> Customer | None:
    return s.get(Customer, customer_id)


def list_units_for_customer(s: "Session", customer_id: int) -> list[Unit]:
    return list(
        s.execute(
            select(Unit).where(Unit.customer_id == customer_id).order_by(Unit.created_at.asc(), Unit.id.asc())
        ).scalars()
    )


def unit_count_subquery():
    return (
        select(Unit.customer_id, func.count(Unit.id).label("unit_count"))
        .group_by(Unit.customer_id)
        .subquery()
    )


def list_recent_customers(s: "Session", *, page: int = 1, per_page: int = 25) -> tuple[list[tuple[Customer, int]], int]:
    """Newest customers first, each with its unit count."""
    total = s.execute(select(func.count(Customer.id))).scalar_one()
    counts = unit_count_subquery()
    rows = s.execute(
        select(Customer, func.coalesce(counts.c.unit_count, 0))
        .outerjoin(counts, Customer.id == counts.c.customer_id)
        .order_by(Customer.created_at.desc(), Customer.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()
    return [(c, int(n)) for c, n in rows], int(total)
