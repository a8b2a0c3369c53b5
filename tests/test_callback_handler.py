"""Tests for touchbase.core.callback_handler — the button-press protocol.

Covers the ack ordering, the ignore/none/update/not-found branches and the
rule that nothing raises past the handler once the webhook is acked.
"""

from datetime import datetime
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from touchbase.core.callback_handler import (
    NONE_REPLY,
    CallbackHandler,
    CallbackState,
    ErrorKind,
    find_roster_row,
)
from touchbase.data.models import CallbackEvent, RosterRow
from touchbase.ports.contact_store_port import StoreReadError, StoreWriteError
from touchbase.ports.messaging_port import MessagingError

NY = ZoneInfo("America/New_York")


def _clock():
    return datetime(2025, 3, 15, 10, 30, tzinfo=NY)


def _event(payload="contact_Jane_Doe", chat_id=12345, callback_id="cb-1", user_id=12345):
    return CallbackEvent(
        callback_id=callback_id, chat_id=chat_id, payload=payload, user_id=user_id,
    )


@pytest.fixture
def handler(store, messaging, settings):
    return CallbackHandler(store, messaging, settings, clock=_clock)


@pytest.fixture
def respond():
    return AsyncMock(return_value=None)


# ---------------------------------------------------------------------------
# Ordering and acks
# ---------------------------------------------------------------------------


class TestAcks:
    @pytest.mark.asyncio
    async def test_transport_ack_happens_before_any_business_call(self, store, messaging, settings):
        calls = []
        respond = AsyncMock(side_effect=lambda: calls.append("respond"))
        messaging.ack_control.side_effect = lambda *a, **k: calls.append("ack_control")
        messaging.send_message.side_effect = lambda *a, **k: calls.append("send")
        store.list_contacts.side_effect = lambda *a: calls.append("list") or []

        await CallbackHandler(store, messaging, settings, clock=_clock).run(_event(), respond)

        assert calls[0] == "respond"
        assert calls.count("respond") == 1
        assert calls.index("respond") < calls.index("list")

    @pytest.mark.asyncio
    async def test_transport_ack_sent_even_for_empty_event(self, handler, respond):
        await handler.run(None, respond)
        respond.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_transport_ack_failure_does_not_stop_processing(self, handler, store):
        respond = AsyncMock(side_effect=RuntimeError("socket closed"))
        outcome = await handler.run(_event(), respond)
        assert outcome.success is True
        store.update_last_contact_date.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_double_transport_ack_does_not_change_outcome(self, handler, store):
        async def respond_twice():
            await first()
            await first()

        first = AsyncMock()
        once = await handler.run(_event(), AsyncMock())
        twice = await handler.run(_event(), respond_twice)
        assert once.to_dict() == twice.to_dict()
        assert first.await_count == 2

    @pytest.mark.asyncio
    async def test_control_ack_with_processing_text(self, handler, respond, messaging):
        await handler.run(_event(), respond)
        messaging.ack_control.assert_awaited_once_with("cb-1", "Processing...")

    @pytest.mark.asyncio
    async def test_control_ack_failure_is_cosmetic(self, handler, respond, messaging):
        messaging.ack_control.side_effect = MessagingError("query is too old")
        outcome = await handler.run(_event(), respond)
        assert outcome.success is True
        assert outcome.state == CallbackState.CONFIRMED

    @pytest.mark.asyncio
    async def test_no_control_ack_without_callback_id(self, handler, respond, messaging):
        await handler.run(_event(callback_id=None), respond)
        messaging.ack_control.assert_not_called()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestIgnored:
    @pytest.mark.asyncio
    async def test_no_event(self, handler, respond, store, messaging):
        outcome = await handler.run(None, respond)
        assert outcome.processed is False
        assert outcome.success is True
        assert outcome.state == CallbackState.IGNORED
        store.list_contacts.assert_not_called()
        messaging.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_chat_id(self, handler, respond, store):
        outcome = await handler.run(_event(chat_id=None), respond)
        assert (outcome.processed, outcome.success) == (False, True)
        store.list_contacts.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_payload(self, handler, respond):
        outcome = await handler.run(_event(payload=None), respond)
        assert (outcome.processed, outcome.success) == (False, True)

    @pytest.mark.asyncio
    async def test_foreign_payload(self, handler, respond):
        outcome = await handler.run(_event(payload="something_else"), respond)
        assert outcome.state == CallbackState.IGNORED

    @pytest.mark.asyncio
    async def test_unauthorized_user(self, store, messaging, settings, respond):
        settings = settings.model_copy(update={"ALLOWED_USER_IDS": [999]})
        handler = CallbackHandler(store, messaging, settings, clock=_clock)
        outcome = await handler.run(_event(user_id=12345), respond)
        assert outcome.state == CallbackState.IGNORED
        assert outcome.success is True
        store.update_last_contact_date.assert_not_called()


# ---------------------------------------------------------------------------
# Business branches
# ---------------------------------------------------------------------------


class TestNoneRecently:
    @pytest.mark.asyncio
    async def test_none_button(self, handler, respond, store, messaging):
        outcome = await handler.run(_event(payload="contact_none"), respond)
        assert outcome.processed is True
        assert outcome.success is True
        assert outcome.action == "none"
        store.update_last_contact_date.assert_not_called()
        messaging.send_message.assert_awaited_once_with(12345, NONE_REPLY)


class TestUpdateContact:
    @pytest.mark.asyncio
    async def test_updates_row_to_today(self, handler, respond, store, messaging):
        outcome = await handler.run(_event(), respond)

        assert outcome.processed is True
        assert outcome.success is True
        assert outcome.state == CallbackState.CONFIRMED
        assert outcome.contact_name == "Jane Doe"
        assert outcome.row_handle == 2
        assert outcome.date_set == "2025-03-15"
        store.update_last_contact_date.assert_awaited_once_with(2, "2025-03-15")
        messaging.send_message.assert_awaited_with(
            12345, "✅ Updated Jane Doe's last contact to today!"
        )

    @pytest.mark.asyncio
    async def test_today_uses_reference_timezone(self, store, messaging, settings, respond):
        # 01:00 UTC on the 16th is the evening of the 15th in New York
        clock = lambda: datetime(2025, 3, 16, 1, 0, tzinfo=ZoneInfo("UTC"))
        handler = CallbackHandler(store, messaging, settings, clock=clock)
        outcome = await handler.run(_event(), respond)
        assert outcome.date_set == "2025-03-15"

    @pytest.mark.asyncio
    async def test_match_is_case_insensitive(self, handler, respond, store):
        outcome = await handler.run(_event(payload="contact_jane_doe"), respond)
        assert outcome.contact_name == "Jane Doe"

    @pytest.mark.asyncio
    async def test_first_duplicate_wins(self, handler, respond, store):
        store.list_contacts.return_value = [
            RosterRow(row_handle=7, name="Jane Doe", last_contact_raw="2025-01-01", frequency_raw="7"),
            RosterRow(row_handle=9, name="Jane Doe", last_contact_raw="2025-01-01", frequency_raw="7"),
        ]
        outcome = await handler.run(_event(), respond)
        assert outcome.row_handle == 7

    @pytest.mark.asyncio
    async def test_never_moves_date_backwards(self, handler, respond, store):
        store.list_contacts.return_value = [
            RosterRow(row_handle=2, name="Jane Doe", last_contact_raw="2025-04-01", frequency_raw="14"),
        ]
        outcome = await handler.run(_event(), respond)
        assert outcome.success is True
        assert outcome.date_set == "2025-04-01"
        store.update_last_contact_date.assert_not_called()

    @pytest.mark.asyncio
    async def test_confirmation_failure_still_success(self, handler, respond, messaging):
        messaging.send_message.side_effect = MessagingError("chat not found")
        outcome = await handler.run(_event(), respond)
        assert outcome.success is True
        assert outcome.state == CallbackState.UPDATED


class TestFailures:
    @pytest.mark.asyncio
    async def test_unknown_contact(self, handler, respond, store, messaging):
        outcome = await handler.run(_event(payload="contact_Nobody_Here"), respond)

        assert outcome.success is False
        assert outcome.state == CallbackState.FAILED
        assert outcome.error_kind == ErrorKind.CONTACT_NOT_FOUND
        store.update_last_contact_date.assert_not_called()
        messaging.send_message.assert_awaited_once_with(
            12345, '❌ Contact "Nobody Here" not found in spreadsheet.'
        )

    @pytest.mark.asyncio
    async def test_unknown_contact_message_failure_keeps_not_found(self, handler, respond, messaging):
        messaging.send_message.side_effect = MessagingError("bot blocked")
        outcome = await handler.run(_event(payload="contact_Nobody_Here"), respond)

        assert outcome.state == CallbackState.FAILED
        assert outcome.error_kind == ErrorKind.CONTACT_NOT_FOUND
        # No second "❌ Error:" attempt after the not-found reply fails
        messaging.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_read_failure(self, handler, respond, store, messaging):
        store.list_contacts.side_effect = StoreReadError("403 forbidden")
        outcome = await handler.run(_event(), respond)

        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.STORE_READ_FAILURE
        messaging.send_message.assert_awaited_once()
        assert "403 forbidden" in messaging.send_message.call_args[0][1]

    @pytest.mark.asyncio
    async def test_store_write_failure(self, handler, respond, store):
        store.update_last_contact_date.side_effect = StoreWriteError("rate limited")
        outcome = await handler.run(_event(), respond)
        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.STORE_WRITE_FAILURE

    @pytest.mark.asyncio
    async def test_error_reply_failure_is_swallowed(self, handler, respond, store, messaging):
        store.list_contacts.side_effect = RuntimeError("boom")
        messaging.send_message.side_effect = MessagingError("also down")
        outcome = await handler.run(_event(), respond)
        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.UNEXPECTED

    @pytest.mark.asyncio
    async def test_none_reply_failure_reported(self, handler, respond, messaging):
        messaging.send_message.side_effect = MessagingError("bot blocked")
        outcome = await handler.run(_event(payload="contact_none"), respond)
        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.MESSAGING_FAILURE


# ---------------------------------------------------------------------------
# Scenario: check-in then button press
# ---------------------------------------------------------------------------


class TestCheckinThenPress:
    @pytest.mark.asyncio
    async def test_due_contact_gets_updated(self, store, messaging, settings, respond):
        from touchbase.core.checkin import CheckinScheduler

        result = await CheckinScheduler(store, messaging, settings).run(_clock())
        assert [(d.name, d.overdue_days) for d in result.due] == [("Jane Doe", 16)]

        payload = messaging.send_message.call_args[0][2][0].payload
        outcome = await CallbackHandler(store, messaging, settings, clock=_clock).run(
            _event(payload=payload), respond,
        )
        assert outcome.processed is True
        assert outcome.contact_name == "Jane Doe"
        store.update_last_contact_date.assert_awaited_once_with(2, "2025-03-15")


class TestFindRosterRow:
    def test_underscore_roster_name_matches(self):
        rows = [RosterRow(row_handle=3, name="Jane_Doe")]
        assert find_roster_row(rows, "Jane Doe").row_handle == 3

    def test_no_match(self):
        assert find_roster_row([RosterRow(row_handle=3, name="Bob")], "Jane") is None


class TestOutcomeDict:
    @pytest.mark.asyncio
    async def test_success_dict(self, handler, respond):
        outcome = await handler.run(_event(), respond)
        assert outcome.to_dict() == {
            "processed": True,
            "success": True,
            "state": "confirmed",
            "action": "update",
            "contactName": "Jane Doe",
            "rowUpdated": 2,
            "dateSet": "2025-03-15",
            "callbackId": "cb-1",
        }

    @pytest.mark.asyncio
    async def test_ignored_dict(self, handler, respond):
        outcome = await handler.run(None, respond)
        assert outcome.to_dict() == {
            "processed": False,
            "success": True,
            "state": "ignored",
            "message": "Health check ignored",
        }
