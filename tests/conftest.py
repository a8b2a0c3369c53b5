"""Shared test fixtures and configuration.

Provides a Settings instance built directly (no .env, no sys.exit) and
AsyncMock stand-ins for the contact store and messaging ports.
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from touchbase.config import Settings
from touchbase.data.models import RosterRow

TODAY = date(2025, 3, 15)


def days_ago(n: int) -> str:
    return (TODAY - timedelta(days=n)).isoformat()


@pytest.fixture
def settings():
    """Settings with fake credentials and the default policy values."""
    return Settings(
        TELEGRAM_BOT_TOKEN="fake-token-for-tests",
        TELEGRAM_CHAT_ID="12345",
        SPREADSHEET_ID="fake-sheet-id",
    )


@pytest.fixture
def roster():
    """A small roster with one due, one not-yet-due and two malformed rows."""
    return [
        RosterRow(row_handle=2, name="Jane Doe", type="Friend",
                  last_contact_raw=days_ago(30), frequency_raw="14"),
        RosterRow(row_handle=3, name="Bob Smith", type="Mentor",
                  last_contact_raw=days_ago(2), frequency_raw="30"),
        RosterRow(row_handle=4, name="Weekly Wendy", type="Family",
                  last_contact_raw=days_ago(10), frequency_raw="weekly"),
        RosterRow(row_handle=5, name="No Date", type="",
                  last_contact_raw="", frequency_raw="7"),
    ]


@pytest.fixture
def store(roster):
    """AsyncMock ContactStorePort serving the roster fixture."""
    mock = AsyncMock()
    mock.list_contacts = AsyncMock(return_value=roster)
    mock.update_last_contact_date = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def messaging():
    """AsyncMock MessagingPort that accepts everything."""
    mock = AsyncMock()
    mock.send_message = AsyncMock(return_value=None)
    mock.ack_control = AsyncMock(return_value=None)
    return mock
