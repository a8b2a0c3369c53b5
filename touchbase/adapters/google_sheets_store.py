"""Google Sheets adapter — implements ContactStorePort for the roster sheet.

All Sheets-specific logic (A1 ranges, value input options) lives here.
Core modules never import this directly; they depend on the
ContactStorePort protocol.

Sheet layout, header in row 1:

    A name | B type | C last contact | D frequency (days) | E notes
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from touchbase.data.models import RosterRow
from touchbase.ports.contact_store_port import StoreReadError, StoreWriteError

if TYPE_CHECKING:
    from touchbase.config import Settings

logger = logging.getLogger(__name__)

_FIRST_COLUMN = "A"
_LAST_COLUMN = "E"
_DATE_COLUMN = "C"
_MIN_CELLS = 4


def _cell(row: list, index: int) -> str:
    return str(row[index]).strip() if index < len(row) else ""


def rows_from_values(values: list[list], window_start: int) -> list[RosterRow]:
    """Turn a Sheets values grid into RosterRows, keeping sheet row numbers.

    Rows with fewer than four cells can't carry a name, date and frequency
    and are dropped here; everything else is left for the classifier.
    """
    rows = []
    for offset, raw in enumerate(values):
        if not raw or len(raw) < _MIN_CELLS:
            continue
        rows.append(
            RosterRow(
                row_handle=window_start + offset,
                name=_cell(raw, 0),
                type=_cell(raw, 1),
                last_contact_raw=_cell(raw, 2),
                frequency_raw=_cell(raw, 3),
                notes=_cell(raw, 4),
            )
        )
    return rows


class GoogleSheetsContactStore:
    """Google Sheets implementation of ContactStorePort."""

    def __init__(self, settings: Settings, service) -> None:
        """
        Args:
            settings: Supplies the spreadsheet id and sheet name.
            service: A Sheets v4 service, see integrations.google_auth.build_sheets_service.
        """
        self._spreadsheet_id = settings.SPREADSHEET_ID
        self._sheet = settings.SHEET_NAME
        self._service = service

    async def list_contacts(
        self, window_start: int, window_end: int
    ) -> list[RosterRow]:
        range_name = (
            f"{self._sheet}!{_FIRST_COLUMN}{window_start}:{_LAST_COLUMN}{window_end}"
        )
        request = self._service.spreadsheets().values().get(
            spreadsheetId=self._spreadsheet_id,
            range=range_name,
            valueRenderOption="FORMATTED_VALUE",
        )
        try:
            # The client is synchronous; keep it off the event loop
            result = await asyncio.to_thread(request.execute)
        except Exception as exc:
            logger.error("Failed to read roster range %s: %s", range_name, exc)
            raise StoreReadError(f"Failed to read roster: {exc}") from exc

        rows = rows_from_values(result.get("values", []), window_start)
        logger.info("Read %d roster row(s) from %s", len(rows), range_name)
        return rows

    async def update_last_contact_date(
        self, row_handle: int, date_string: str
    ) -> None:
        range_name = f"{self._sheet}!{_DATE_COLUMN}{row_handle}"
        request = self._service.spreadsheets().values().update(
            spreadsheetId=self._spreadsheet_id,
            range=range_name,
            # RAW keeps "2025-03-01" a string instead of a date serial
            valueInputOption="RAW",
            body={
                "range": range_name,
                "majorDimension": "ROWS",
                "values": [[date_string]],
            },
        )
        try:
            await asyncio.to_thread(request.execute)
            logger.info("Updated %s to %s", range_name, date_string)
        except Exception as exc:
            logger.error("Failed to update %s: %s", range_name, exc)
            raise StoreWriteError(f"Failed to update last contact date: {exc}") from exc
