"""
Central constants for the CRM application.
"""
from __future__ import annotations

ROLE_STAFF = "staff"
ROLE_ADMIN = "admin"
VALID_ROLES = frozenset({ROLE_STAFF, ROLE_ADMIN})

# Live customer search (job intake + profile search)
MIN_SEARCH_LENGTH = 2
SEARCH_DEBOUNCE_SECONDS = 0.3
SEARCH_RESULT_LIMIT = 20

# Seconds a success page stays up before navigating away
SUCCESS_REDIRECT_DELAY_SECONDS = 2

MIN_UNIT_YEAR = 1900
MIN_JOB_DURATION_HOURS = 0.5
