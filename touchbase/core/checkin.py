"""
Touchbase — Weekly Check-in.

Reads the roster, works out who is due for outreach and sends one message
with a button per due contact. Pressing a button is handled later, and
independently, by the callback handler.

This module depends on the ContactStorePort and MessagingPort protocols,
not on Google Sheets or the Bot API; only the Markdown escaping helper
comes from python-telegram-bot. It never writes to the roster.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from telegram.helpers import escape_markdown

from touchbase.core.callback_codec import NO_UPDATE_PAYLOAD, CallbackEncodingError, encode
from touchbase.core.due_classifier import find_due_contacts
from touchbase.ports.messaging_port import Control

if TYPE_CHECKING:
    from touchbase.config import Settings
    from touchbase.data.models import DueAssessment
    from touchbase.ports.contact_store_port import ContactStorePort
    from touchbase.ports.messaging_port import MessagingPort

logger = logging.getLogger(__name__)

HEADER = "🤝 *Weekly Connection Check-in*"
ALL_CAUGHT_UP = "🎉 All contacts are up to date!"
QUESTION = "Have you spoken to any of these people recently?"
NONE_RECENTLY_LABEL = "❌ None Recently"


@dataclass
class CheckinResult:
    """Summary of one check-in run."""

    contacts_processed: int
    contacts_due: int
    message_sent: bool
    due: list[DueAssessment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.message_sent,
            "contactsProcessed": self.contacts_processed,
            "contactsDue": self.contacts_due,
            "messageSent": self.message_sent,
        }


def _status_text(contact: DueAssessment) -> str:
    if contact.overdue_days > 0:
        return f"({contact.overdue_days} days overdue)"
    if contact.days_remaining == 0:
        return "(due today)"
    return f"(due in {contact.days_remaining} days)"


def compose_checkin(due: list[DueAssessment]) -> tuple[str, list[Control]]:
    """Build the check-in text and its buttons.

    The "none recently" button is only offered when there is someone to ask
    about. A contact whose name can't be encoded as a payload is still listed,
    just without a button.
    """
    lines = [HEADER, ""]
    controls: list[Control] = []

    if not due:
        lines.append(ALL_CAUGHT_UP)
        return "\n".join(lines), controls

    lines.append(QUESTION)
    lines.append("")
    for contact in due:
        lines.append(
            f"• {escape_markdown(contact.name)} - {escape_markdown(contact.type)} "
            f"{_status_text(contact)}"
        )
        try:
            payload = encode(contact.name)
        except CallbackEncodingError as exc:
            logger.warning("No button for %r: %s", contact.name, exc)
            continue
        controls.append(Control(label=f"✅ {contact.name}", payload=payload))

    controls.append(Control(label=NONE_RECENTLY_LABEL, payload=NO_UPDATE_PAYLOAD))
    return "\n".join(lines), controls


class CheckinScheduler:
    """Runs the check-in: roster -> due contacts -> one reminder message."""

    def __init__(
        self,
        store: ContactStorePort,
        messaging: MessagingPort,
        settings: Settings,
    ) -> None:
        self._store = store
        self._messaging = messaging
        self._settings = settings

    def _today(self, now: datetime | None) -> date:
        tz = ZoneInfo(self._settings.TIMEZONE)
        if now is None:
            return datetime.now(tz).date()
        if now.tzinfo is None:
            return now.date()
        return now.astimezone(tz).date()

    async def run(self, now: datetime | None = None) -> CheckinResult:
        """Send the check-in message.

        Store and messaging failures are logged and re-raised; whoever
        triggered the run owns retries and alerting.
        """
        logger.info("Processing weekly check-in")
        try:
            first_row, last_row = self._settings.roster_window
            rows = await self._store.list_contacts(first_row, last_row)
            logger.info("Found %d roster row(s)", len(rows))

            today = self._today(now)
            due = find_due_contacts(rows, today, self._settings.BUFFER_DAYS)
            text, controls = compose_checkin(due)

            await self._messaging.send_message(
                self._settings.TELEGRAM_CHAT_ID, text, controls, markdown=True,
            )
        except Exception as exc:
            logger.error("Check-in error: %s", exc)
            raise

        logger.info("Sent check-in with %d due contact(s)", len(due))
        return CheckinResult(
            contacts_processed=len(rows),
            contacts_due=len(due),
            message_sent=True,
            due=due,
        )
