"""
Job intake state: live customer search, cascading unit selection and the job
draft.

Search-as-you-type is debounced and every issued search is tagged with a
sequence number. Results are applied only when their number is the latest
issued, so a slow response for an older query never overwrites a newer one.
Unit fetches for the selected customer are tagged the same way.

The browser runs the same rules in ``jobs/create.html``; the server-rendered
fallback drives this class directly from request parameters.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from app.crm.constants import MIN_SEARCH_LENGTH, SEARCH_DEBOUNCE_SECONDS
from app.crm.modules.jobs.service import JobDraft, JobSubmission, build_job_submission

if TYPE_CHECKING:
    from app.crm.modules.customers.models import Unit
    from app.crm.modules.profiles.service import CustomerSearchResult


@dataclass(frozen=True)
class SearchTicket:
    seq: int
    query: str


@dataclass(frozen=True)
class UnitFetch:
    seq: int
    customer_id: int


class LiveCustomerSearch:
    def __init__(
        self,
        *,
        min_length: int = MIN_SEARCH_LENGTH,
        debounce: float = SEARCH_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_length = min_length
        self.debounce = debounce
        self._clock = clock
        self.query = ""
        self.results: list[Any] = []
        self.show_results = False
        self._pending_since: float | None = None
        self._seq = 0
        self._latest = 0

    @property
    def latest_seq(self) -> int:
        return self._latest

    def type(self, text: str) -> None:
        """Record a keystroke. Short queries clear results and invalidate in-flight searches."""
        self.query = text or ""
        if len(self.query) < self.min_length:
            self._pending_since = None
            self._latest = self._next_seq()
            self.results = []
            self.show_results = False
            return
        self._pending_since = self._clock()

    def set_text(self, text: str) -> None:
        """Replace the visible text without scheduling a search."""
        self.query = text or ""
        self._pending_since = None
        self._latest = self._next_seq()
        self.show_results = False

    def is_due(self) -> bool:
        if self._pending_since is None:
            return False
        return self._clock() - self._pending_since >= self.debounce

    def issue(self, *, force: bool = False) -> SearchTicket | None:
        """Issue the pending search once the debounce window has passed (or immediately with ``force``)."""
        if self._pending_since is None or not (force or self.is_due()):
            return None
        self._pending_since = None
        self._latest = self._next_seq()
        return SearchTicket(seq=self._latest, query=self.query)

    def apply(self, ticket: SearchTicket, results: Sequence[Any]) -> bool:
        if ticket.seq != self._latest:
            return False
        self.results = list(results)
        self.show_results = True
        return True

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq


class JobIntake:
    def __init__(
        self,
        *,
        search: LiveCustomerSearch | None = None,
        draft: JobDraft | None = None,
    ):
        self.search = search or LiveCustomerSearch()
        self.draft = draft or JobDraft()
        self.customer: "CustomerSearchResult | None" = None
        self.units: list["Unit"] = []
        self._fetch_seq = 0
        self._latest_fetch: UnitFetch | None = None

    @property
    def unit_id(self) -> int | None:
        return self.draft.unit_id

    @property
    def details_visible(self) -> bool:
        """Job details and work items are only rendered once customer and unit are chosen."""
        return self.customer is not None and self.draft.unit_id is not None

    def change_query(self, text: str) -> None:
        """Editing the search text drops any customer/unit selection."""
        self.search.type(text)
        self._clear_selection()

    def run_search(self, search_fn: Callable[[str], Sequence[Any]], *, force: bool = False) -> bool:
        ticket = self.search.issue(force=force)
        if ticket is None:
            return False
        return self.search.apply(ticket, search_fn(ticket.query))

    def select_customer(self, result: "CustomerSearchResult") -> UnitFetch:
        self.customer = result
        self.draft.customer_id = result.id
        self.draft.unit_id = None
        self.units = []
        self.search.set_text(result.display_name)
        self._fetch_seq += 1
        self._latest_fetch = UnitFetch(seq=self._fetch_seq, customer_id=result.id)
        return self._latest_fetch

    def receive_units(self, fetch: UnitFetch, units: Sequence["Unit"]) -> bool:
        if fetch != self._latest_fetch or self.customer is None or self.customer.id != fetch.customer_id:
            return False
        self.units = list(units)
        if len(self.units) == 1:
            self.draft.unit_id = self.units[0].id
        return True

    def load_units(self, fetch: UnitFetch, units_fn: Callable[[int], Sequence["Unit"]]) -> bool:
        return self.receive_units(fetch, units_fn(fetch.customer_id))

    def select_unit(self, unit_id: int | None) -> bool:
        if unit_id is None:
            self.draft.unit_id = None
            return True
        if not any(u.id == unit_id for u in self.units):
            return False
        self.draft.unit_id = unit_id
        return True

    def submission(self) -> JobSubmission:
        return build_job_submission(self.draft)

    def _clear_selection(self) -> None:
        self.customer = None
        self.units = []
        self.draft.customer_id = None
        self.draft.unit_id = None
        self._latest_fetch = None
