"""Contact store port — abstract interface for the roster.

Core modules depend on this protocol, never on a specific spreadsheet API.
"""

from __future__ import annotations

from typing import Protocol

from touchbase.data.models import RosterRow


class StoreError(Exception):
    """Raised when any contact store operation fails."""


class StoreReadError(StoreError):
    """Raised when the roster cannot be read."""


class StoreWriteError(StoreError):
    """Raised when a last-contact date cannot be written."""


class ContactStorePort(Protocol):
    """Abstract roster interface used by core modules."""

    async def list_contacts(
        self, window_start: int, window_end: int
    ) -> list[RosterRow]: ...

    async def update_last_contact_date(
        self, row_handle: int, date_string: str
    ) -> None: ...
