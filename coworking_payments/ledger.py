"""Google Sheets ledger: one row per checkout, matched on external reference.

Lookups are a fresh linear scan of the worksheet every time; there is no
cache and no index.  Concurrent updates to the same reference are not
synchronised (last write wins).

Usage::

    ledger = SheetsLedger.from_service_account(
        "1AbC...",
        {"client_email": "...", "private_key": "...", "token_uri": "..."},
    )
    ledger.append(row)
    ledger.update_status("COWORKING-1718000000000", "Paid")
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import gspread
import requests
from google.auth.exceptions import GoogleAuthError
from gspread.exceptions import GSpreadException

from coworking_payments.exceptions import LedgerError
from coworking_payments.models import LedgerRow

logger = logging.getLogger(__name__)

_REFERENCE_COLUMN = LedgerRow.HEADERS.index("externalReference")
_STATUS_COLUMN = LedgerRow.HEADERS.index("status")

# Malformed service-account keys surface as ValueError when credentials are built.
LEDGER_ERRORS = (GSpreadException, GoogleAuthError, requests.RequestException, ValueError)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def service_account_info(
    client_email: str, private_key: str, token_uri: str = GOOGLE_TOKEN_URI
) -> dict[str, str]:
    """Build service-account info from the email / private-key pair.

    Private keys stored in environment variables usually carry literal
    ``\\n`` sequences; they are turned back into newlines.
    """
    return {
        "type": "service_account",
        "client_email": client_email,
        "private_key": private_key.replace("\\n", "\n"),
        "token_uri": token_uri,
    }


class SheetsLedger:
    """Ledger backed by a gspread worksheet.

    Args:
        worksheet: An opened :class:`gspread.Worksheet`, or a zero-argument
            callable returning one.  The callable form defers the network
            round-trip until the ledger is first used.
    """

    def __init__(self, worksheet: Any | Callable[[], Any]) -> None:
        if callable(worksheet):
            self._opener = worksheet
            self._worksheet = None
        else:
            self._opener = None
            self._worksheet = worksheet

    @classmethod
    def from_service_account(
        cls,
        spreadsheet_id: str,
        credentials: dict[str, Any],
        worksheet: str | None = None,
    ) -> "SheetsLedger":
        """Return a ledger that opens *spreadsheet_id* on first use."""

        def _open():
            client = gspread.service_account_from_dict(credentials)
            spreadsheet = client.open_by_key(spreadsheet_id)
            return spreadsheet.worksheet(worksheet) if worksheet else spreadsheet.sheet1

        return cls(_open)

    @property
    def worksheet(self):
        if self._worksheet is None:
            try:
                self._worksheet = self._opener()
            except LEDGER_ERRORS as exc:
                raise LedgerError(f"could not open ledger worksheet: {exc}") from exc
        return self._worksheet

    def _rows(self) -> list[list[str]]:
        try:
            return self.worksheet.get_all_values()
        except LEDGER_ERRORS as exc:
            raise LedgerError(f"could not read ledger: {exc}") from exc

    def _find_index(self, reference: str) -> tuple[int, list[str]] | None:
        """Return ``(1-based row number, values)`` of the first row for *reference*."""
        for number, values in enumerate(self._rows(), start=1):
            if tuple(values[: len(LedgerRow.HEADERS)]) == LedgerRow.HEADERS:
                continue
            if len(values) > _REFERENCE_COLUMN and values[_REFERENCE_COLUMN] == reference:
                return number, values
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure_headers(self) -> bool:
        """Write the header row when the worksheet is empty. Returns ``True`` if written."""
        if self._rows():
            return False
        self.append_values(list(LedgerRow.HEADERS))
        return True

    def append_values(self, values: list[str]) -> None:
        try:
            self.worksheet.append_row(values, value_input_option="RAW")
        except LEDGER_ERRORS as exc:
            raise LedgerError(f"could not append ledger row: {exc}") from exc

    def append(self, row: LedgerRow) -> None:
        """Append *row* at the end of the worksheet."""
        self.append_values(row.to_values())
        logger.info("ledger row appended reference=%s", row.external_reference)

    def find(self, reference: str) -> LedgerRow | None:
        """Return the first row whose external reference equals *reference*."""
        found = self._find_index(reference)
        if found is None:
            return None
        return LedgerRow.from_values(found[1])

    def update_status(self, reference: str, status: str) -> bool:
        """Set the status cell of the first row for *reference*.

        Returns ``False`` (and logs a warning) when no row matches.
        """
        found = self._find_index(reference)
        if found is None:
            logger.warning("no ledger row for reference=%s", reference)
            return False
        number, _ = found
        try:
            self.worksheet.update_cell(number, _STATUS_COLUMN + 1, status)
        except LEDGER_ERRORS as exc:
            raise LedgerError(f"could not update ledger row: {exc}") from exc
        logger.info("ledger row updated reference=%s status=%s", reference, status)
        return True
