"""
Touchbase — Button Callback Handler.

Handles one inbound button press from the check-in message:

    RECEIVED -> ACKED -> VALIDATED -> RESOLVED -> UPDATED -> CONFIRMED

with early exits to IGNORED (empty, foreign or unauthorized presses) and
FAILED (unknown contact, store or messaging errors).

The transport ack always comes first. Telegram retries a webhook delivery
on any slow or non-2xx answer, so the HTTP response is released before any
roster work starts; after that point nothing here raises. Business failures
end up in the returned CallbackOutcome and, where useful, in a chat message.

Concurrent presses for the same contact are last-writer-wins: both write
the same "today", and no locking is attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable
from zoneinfo import ZoneInfo

from touchbase.core.callback_codec import NO_UPDATE, decode, normalize_name
from touchbase.core.due_classifier import parse_contact_date
from touchbase.ports.contact_store_port import StoreReadError, StoreWriteError
from touchbase.ports.messaging_port import MessagingError

if TYPE_CHECKING:
    from touchbase.config import Settings
    from touchbase.data.models import CallbackEvent, RosterRow
    from touchbase.ports.contact_store_port import ContactStorePort
    from touchbase.ports.messaging_port import MessagingPort

logger = logging.getLogger(__name__)

Responder = Callable[[], Awaitable[None]]

PROCESSING_TEXT = "Processing..."
NONE_REPLY = "👍 No problem! I'll check in again next week."


class CallbackState(str, Enum):
    RECEIVED = "received"
    ACKED = "acked"
    VALIDATED = "validated"
    RESOLVED = "resolved"
    UPDATED = "updated"
    CONFIRMED = "confirmed"
    IGNORED = "ignored"
    FAILED = "failed"


class ErrorKind(str, Enum):
    TRANSPORT_ACK_FAILURE = "transport_ack_failure"
    CONTROL_ACK_FAILURE = "control_ack_failure"
    CONTACT_NOT_FOUND = "contact_not_found"
    STORE_READ_FAILURE = "store_read_failure"
    STORE_WRITE_FAILURE = "store_write_failure"
    MESSAGING_FAILURE = "messaging_failure"
    UNEXPECTED = "unexpected"


@dataclass
class CallbackOutcome:
    """What happened to one callback event."""

    processed: bool
    success: bool
    state: CallbackState
    action: str | None = None          # "none" | "update"
    contact_name: str | None = None
    row_handle: int | None = None
    date_set: str | None = None
    callback_id: str | None = None
    error_kind: ErrorKind | None = None
    detail: str = ""

    def to_dict(self) -> dict:
        data: dict = {
            "processed": self.processed,
            "success": self.success,
            "state": self.state.value,
        }
        if self.action:
            data["action"] = self.action
        if self.contact_name is not None:
            data["contactName"] = self.contact_name
        if self.row_handle is not None:
            data["rowUpdated"] = self.row_handle
        if self.date_set is not None:
            data["dateSet"] = self.date_set
        if self.callback_id is not None:
            data["callbackId"] = self.callback_id
        if self.error_kind is not None:
            data["errorKind"] = self.error_kind.value
            data["error"] = self.detail
        elif self.detail:
            data["message"] = self.detail
        return data


def _error_kind_for(exc: Exception) -> ErrorKind:
    if isinstance(exc, StoreReadError):
        return ErrorKind.STORE_READ_FAILURE
    if isinstance(exc, StoreWriteError):
        return ErrorKind.STORE_WRITE_FAILURE
    if isinstance(exc, MessagingError):
        return ErrorKind.MESSAGING_FAILURE
    return ErrorKind.UNEXPECTED


def find_roster_row(rows: list[RosterRow], name: str) -> RosterRow | None:
    """Linear scan for the first row whose normalized name matches."""
    wanted = normalize_name(name)
    for row in rows:
        if normalize_name(row.name) == wanted:
            return row
    return None


class CallbackHandler:
    """Turns a button press into a last-contact update plus a chat reply."""

    def __init__(
        self,
        store: ContactStorePort,
        messaging: MessagingPort,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._messaging = messaging
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(ZoneInfo(settings.TIMEZONE)))

    def today(self) -> date:
        """Today in the reference timezone, whatever the host clock says."""
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(ZoneInfo(self._settings.TIMEZONE))
        return now.date()

    async def run(
        self, event: CallbackEvent | None, respond: Responder
    ) -> CallbackOutcome:
        # 1. Transport ack first, regardless of outcome
        try:
            await respond()
            logger.info("Webhook acknowledged, processing button press")
        except Exception as exc:
            logger.warning("Transport ack failed (%s): %s",
                           ErrorKind.TRANSPORT_ACK_FAILURE.value, exc)

        callback_id = event.callback_id if event else None

        # 2. Clear the button's loading spinner (cosmetic)
        if callback_id:
            try:
                await self._messaging.ack_control(callback_id, PROCESSING_TEXT)
            except Exception as exc:
                logger.warning("Callback answer failed (%s): %s",
                               ErrorKind.CONTROL_ACK_FAILURE.value, exc)

        # 3. Validate
        decoded = decode(event.payload) if event else None
        if event is None or decoded is None or not event.chat_id:
            logger.info("Empty or malformed callback ignored")
            return CallbackOutcome(
                processed=False,
                success=True,
                state=CallbackState.IGNORED,
                callback_id=callback_id,
                detail="Health check ignored",
            )

        if self._settings.ALLOWED_USER_IDS and event.user_id not in self._settings.ALLOWED_USER_IDS:
            logger.warning("Unauthorized button press from user_id=%s", event.user_id)
            return CallbackOutcome(
                processed=False,
                success=True,
                state=CallbackState.IGNORED,
                callback_id=callback_id,
                detail="Unauthorized user ignored",
            )

        logger.info("Valid button press: data=%s chat=%s callback=%s",
                    event.payload, event.chat_id, callback_id)

        try:
            # 4. "None recently": nothing to write
            if decoded is NO_UPDATE:
                await self._messaging.send_message(event.chat_id, NONE_REPLY)
                return CallbackOutcome(
                    processed=True,
                    success=True,
                    state=CallbackState.CONFIRMED,
                    action="none",
                    callback_id=callback_id,
                )

            return await self._update_contact(event, decoded, callback_id)

        except Exception as exc:
            kind = _error_kind_for(exc)
            logger.exception("Processing error (%s): %s", kind.value, exc)
            try:
                await self._messaging.send_message(event.chat_id, f"❌ Error: {exc}")
            except Exception as send_exc:
                logger.error("Failed to send error message: %s", send_exc)
            return CallbackOutcome(
                processed=False,
                success=False,
                state=CallbackState.FAILED,
                callback_id=callback_id,
                error_kind=kind,
                detail=str(exc),
            )

    async def _update_contact(
        self, event: CallbackEvent, name: str, callback_id: str | None
    ) -> CallbackOutcome:
        # 5. Resolve
        logger.info("Contact to update: %s", name)
        first_row, last_row = self._settings.roster_window
        rows = await self._store.list_contacts(first_row, last_row)
        row = find_roster_row(rows, name)

        # 6. Not found: reported, not raised
        if row is None:
            logger.warning("Contact %r not found in roster", name)
            try:
                await self._messaging.send_message(
                    event.chat_id, f'❌ Contact "{name}" not found in spreadsheet.'
                )
            except Exception as exc:
                logger.warning("Not-found message failed: %s", exc)
            return CallbackOutcome(
                processed=False,
                success=False,
                state=CallbackState.FAILED,
                contact_name=name,
                callback_id=callback_id,
                error_kind=ErrorKind.CONTACT_NOT_FOUND,
                detail=f'Contact "{name}" not found',
            )

        contact_name = row.name.strip()
        logger.info("Found contact %r at row %s", contact_name, row.row_handle)

        # 7. Write today, never moving the date backwards
        today = self.today()
        current = parse_contact_date(row.last_contact_raw)
        if current is not None and current > today:
            logger.info("Keeping %s for %r: already later than %s",
                        current, contact_name, today)
            date_set = current.isoformat()
        else:
            date_set = today.isoformat()
            logger.info("Updating %s to date: %s", contact_name, date_set)
            await self._store.update_last_contact_date(row.row_handle, date_set)

        # 8. Confirm; the row is already written so a failed reply is not a failure
        state = CallbackState.CONFIRMED
        try:
            await self._messaging.send_message(
                event.chat_id, f"✅ Updated {contact_name}'s last contact to today!"
            )
        except Exception as exc:
            logger.warning("Confirmation message failed: %s", exc)
            state = CallbackState.UPDATED

        return CallbackOutcome(
            processed=True,
            success=True,
            state=state,
            action="update",
            contact_name=contact_name,
            row_handle=row.row_handle,
            date_set=date_set,
            callback_id=callback_id,
        )
