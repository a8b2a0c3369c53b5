"""
Touchbase — Data Models.

The roster lives in an external spreadsheet; these are the shapes the core
works with while a single scheduler run or callback invocation is in flight.
Nothing here is cached across invocations.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RosterRow:
    """One raw roster row as read from the Contact Store.

    Values are kept exactly as the store returned them; parsing and
    validation happen in the due classifier.
    """

    row_handle: int                  # opaque to the core, e.g. sheet row number
    name: str
    type: str = ""
    last_contact_raw: str = ""
    frequency_raw: str = ""
    notes: str = ""


@dataclass(frozen=True)
class DueAssessment:
    """A contact that surfaced as due during a scheduler run."""

    name: str
    type: str
    days_since_contact: int
    target_frequency_days: int
    overdue_days: int
    row_handle: int | None = None

    @property
    def days_remaining(self) -> int:
        """Days left before the cadence is strictly missed (0 once overdue)."""
        return max(0, self.target_frequency_days - self.days_since_contact)


@dataclass(frozen=True)
class CallbackEvent:
    """An inbound button press, already stripped of its wire format."""

    callback_id: str | None
    chat_id: int | str | None
    payload: str | None
    user_id: int | None = None
