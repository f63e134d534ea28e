from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str


class IntakeValidationError(ValueError):
    """Raised before any database access when a draft cannot be submitted."""

    def __init__(self, errors: list[ValidationError]):
        self.errors = list(errors)
        super().__init__("; ".join(e.message for e in self.errors))


def clean(value: str | None) -> str:
    return (value or "").strip()


def format_long_date(value: date | datetime | None) -> str:
    """January 5, 2025"""
    if value is None:
        return "—"
    return f"{value:%B} {value.day}, {value.year}"


def format_duration(hours: float | int | None) -> str:
    if hours is None:
        return "—"
    n = float(hours)
    shown = str(int(n)) if n.is_integer() else f"{n:g}"
    return f"{shown} {'hour' if n == 1 else 'hours'}"


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "—"
    return value.strftime("%Y-%m-%d %H:%M")


def parse_row_action(raw: str | None) -> tuple[str, int | None]:
    """
    Form buttons post ``action=save``, ``action=add`` or ``action=remove:<index>``.
    """
    action = clean(raw) or "save"
    verb, _, idx = action.partition(":")
    if not idx:
        return verb, None
    try:
        return verb, int(idx)
    except ValueError:
        return verb, None
