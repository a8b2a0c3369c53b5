"""Due-date classifier — pure business logic.

Decides which roster contacts should surface in the weekly check-in.
A contact is due once the days since last contact reach its target
frequency minus a buffer, so reminders arrive a little before the cadence
is actually missed.

No I/O: this module only transforms data. Malformed rows are expected in
a hand-edited roster and are skipped, never raised.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime

from touchbase.data.models import DueAssessment, RosterRow

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_DAYS = 3
DEFAULT_CONTACT_TYPE = "Contact"

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%B %d, %Y",
    "%b %d, %Y",
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_TRAILING_TIME = re.compile(r"\s+\d{1,2}:\d{2}(:\d{2})?(\s*[AaPp][Mm])?$")


def parse_contact_date(raw: str) -> date | None:
    """Parse a spreadsheet date cell, ignoring any time-of-day part.

    Returns None when the value is empty or not a recognizable date.
    """
    text = (raw or "").strip()
    if not text:
        return None

    # Timestamps: keep only the calendar day
    if "T" in text and text[:4].isdigit():
        text = text.split("T")[0]
    text = _TRAILING_TIME.sub("", text)

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_frequency(raw: str) -> int | None:
    """Parse a target frequency in days, e.g. "14" or "14 days".

    Returns None for non-numeric ("weekly"), zero or negative values.
    """
    match = _LEADING_INT.match(raw or "")
    if match is None:
        return None
    value = int(match.group(1))
    return value if value > 0 else None


def classify(
    row: RosterRow,
    today: date,
    buffer_days: int = DEFAULT_BUFFER_DAYS,
) -> DueAssessment | None:
    """Assess one roster row against today's date.

    Returns a DueAssessment when the contact is due, or None when it is
    not yet due or the row is malformed (missing name/date/frequency,
    unparseable date or frequency).
    """
    name = (row.name or "").strip()
    if not name:
        return None

    last_contact = parse_contact_date(row.last_contact_raw)
    frequency = parse_frequency(row.frequency_raw)
    if last_contact is None or frequency is None:
        logger.debug("Skipping roster row %s (%r): unparseable date or frequency",
                     row.row_handle, name)
        return None

    days_since = (today - last_contact).days
    if days_since < frequency - buffer_days:
        return None

    return DueAssessment(
        name=name,
        type=(row.type or "").strip() or DEFAULT_CONTACT_TYPE,
        days_since_contact=days_since,
        target_frequency_days=frequency,
        overdue_days=max(0, days_since - frequency),
        row_handle=row.row_handle,
    )


def find_due_contacts(
    rows: list[RosterRow],
    today: date,
    buffer_days: int = DEFAULT_BUFFER_DAYS,
) -> list[DueAssessment]:
    """Return the due contacts, preserving roster order."""
    due = []
    for row in rows:
        assessment = classify(row, today, buffer_days)
        if assessment is not None:
            due.append(assessment)
    return due
