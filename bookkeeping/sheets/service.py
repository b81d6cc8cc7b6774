"""Google Sheets access for bank exports, invoice lists and results.

Uses gspread with a service account:
https://docs.gspread.org/en/latest/oauth2.html

Credentials are read from the file named by GOOGLE_APPLICATION_CREDENTIALS.
"""

import logging
import os
import re
from typing import Protocol

import gspread
from google.oauth2.service_account import Credentials

from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import ConfigurationError, SheetError

logger = logging.getLogger(__name__)

# Google Sheets API scopes
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

_SPREADSHEET_ID = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")


class SpreadsheetClient(Protocol):
    """Read/write access to a spreadsheet."""

    def read_range(self, range_spec: str) -> list[list[str]]: ...

    def append_rows(self, sheet_name: str, rows: list[list[str]]) -> None: ...

    def ensure_worksheet(self, sheet_name: str, headers: list[str]) -> None: ...

    def worksheet_exists(self, sheet_name: str) -> bool: ...


def spreadsheet_id_from_url(url: str) -> str:
    """Extract the spreadsheet ID from a Google Sheets URL.

    A bare ID is returned unchanged.

    Raises:
        ConfigurationError: If the URL is empty
    """
    if not url:
        raise ConfigurationError("sheets", "APP_GOOGLE_SHEET_URL is not set")
    match = _SPREADSHEET_ID.search(url)
    return match.group(1) if match else url.strip()


class GoogleSheetsService:
    """Spreadsheet client backed by the Google Sheets API."""

    def __init__(self, settings: Settings, client: gspread.Client | None = None) -> None:
        """Open the configured spreadsheet.

        Args:
            settings: Application settings with google_sheet_url
            client: Authorized gspread client (tests); built from credentials when None

        Raises:
            ConfigurationError: If the URL or credentials are missing
            SheetError: If the spreadsheet cannot be opened
        """
        self.settings = settings
        self.spreadsheet_id = spreadsheet_id_from_url(settings.google_sheet_url)
        self._client = client or self._authorize()
        try:
            self._spreadsheet = self._client.open_by_key(self.spreadsheet_id)
        except gspread.exceptions.GSpreadException as e:
            raise SheetError("sheets.open", f"cannot open spreadsheet: {e}") from e
        logger.info(f"Opened spreadsheet {self.spreadsheet_id}")

    def _authorize(self) -> gspread.Client:
        credentials_file = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if not credentials_file or not os.path.exists(credentials_file):
            raise ConfigurationError(
                "sheets.authorize",
                "GOOGLE_APPLICATION_CREDENTIALS must point to a service account JSON file",
            )
        creds = Credentials.from_service_account_file(credentials_file, scopes=SCOPES)
        return gspread.authorize(creds)

    def read_range(self, range_spec: str) -> list[list[str]]:
        """Read a range like "Bank!A:K".

        Returns:
            Rows of cell strings; trailing empty cells may be missing

        Raises:
            SheetError: If the range cannot be read
        """
        try:
            return self._spreadsheet.values_get(range_spec).get("values", [])
        except gspread.exceptions.GSpreadException as e:
            raise SheetError("sheets.read_range", f"cannot read {range_spec}: {e}") from e

    def worksheet_exists(self, sheet_name: str) -> bool:
        try:
            self._spreadsheet.worksheet(sheet_name)
            return True
        except gspread.exceptions.WorksheetNotFound:
            return False

    def ensure_worksheet(self, sheet_name: str, headers: list[str]) -> None:
        """Create the worksheet with a header row if it does not exist."""
        if self.worksheet_exists(sheet_name):
            return
        worksheet = self._spreadsheet.add_worksheet(
            title=sheet_name, rows=1000, cols=max(len(headers), 10)
        )
        worksheet.append_row(headers, value_input_option="USER_ENTERED")
        logger.info(f"Created worksheet {sheet_name}")

    def append_rows(self, sheet_name: str, rows: list[list[str]]) -> None:
        """Append rows below the existing data.

        Raises:
            SheetError: If the worksheet is missing or the write fails
        """
        if not rows:
            return
        try:
            worksheet = self._spreadsheet.worksheet(sheet_name)
            worksheet.append_rows(rows, value_input_option="USER_ENTERED")
        except gspread.exceptions.GSpreadException as e:
            raise SheetError("sheets.append_rows", f"cannot write to {sheet_name}: {e}") from e
        logger.info(f"Appended {len(rows)} row(s) to {sheet_name}")
