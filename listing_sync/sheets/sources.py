from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import pandas as pd
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from listing_sync.models.config_models import SourceConfig

"""Tabular sources (read-only).

Both the property list (primary) and the 業務依頼 sheet (auxiliary) are read
through the same two-call contract: authenticate() once, then read_all() to
get every data row as a header-keyed dict. Headers are Japanese and are used
as-is as dict keys.

Two adapters:
- GoogleSheetsSource: Sheets API v4 with a service account. Values are fetched
  UNFORMATTED so dates arrive as day-serials and prices as numbers.
- ExcelSource: a local workbook via pandas (exports, fixtures, dry runs).
"""

__all__ = [
    "SourceError",
    "TabularSource",
    "GoogleSheetsSource",
    "ExcelSource",
    "build_source",
]

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]


class SourceError(Exception):
    """Raised when a tabular source cannot be authenticated or read."""


class TabularSource(Protocol):
    def authenticate(self) -> None: ...

    def read_all(self) -> list[dict[str, Any]]: ...


class GoogleSheetsSource:
    """Read one tab of a Google spreadsheet."""

    def __init__(self, spreadsheet_id: str, sheet_name: str, credentials_file: str) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.credentials_file = credentials_file
        self._service: Any = None

    def authenticate(self) -> None:
        if self._service is not None:
            return
        creds_path = Path(self.credentials_file)
        if not creds_path.exists():
            raise SourceError(f"credentials file not found: {creds_path}")
        try:
            creds = service_account.Credentials.from_service_account_file(
                str(creds_path), scopes=SHEETS_SCOPES
            )
            self._service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        except (ValueError, OSError) as e:
            raise SourceError(f"failed to authenticate sheet '{self.sheet_name}': {e}") from e

    def read_all(self) -> list[dict[str, Any]]:
        if self._service is None:
            raise SourceError(f"sheet '{self.sheet_name}' is not authenticated")
        try:
            result = (
                self._service.spreadsheets()
                .values()
                .get(
                    spreadsheetId=self.spreadsheet_id,
                    range=self.sheet_name,
                    valueRenderOption="UNFORMATTED_VALUE",
                    dateTimeRenderOption="SERIAL_NUMBER",
                )
                .execute()
            )
        except (HttpError, GoogleAuthError, OSError) as e:
            raise SourceError(f"failed to read sheet '{self.sheet_name}': {e}") from e

        values = result.get("values", [])
        if not values:
            return []

        # First row is header
        header = [str(h).strip() for h in values[0]]
        rows: list[dict[str, Any]] = []
        for row_values in values[1:]:
            rows.append(
                {col: (row_values[j] if j < len(row_values) else "") for j, col in enumerate(header)}
            )
        return rows


class ExcelSource:
    """Read one sheet of a local .xlsx workbook (header on the first row)."""

    def __init__(self, path: Path | str, sheet_name: str) -> None:
        self.path = Path(path)
        self.sheet_name = sheet_name

    def authenticate(self) -> None:
        if not self.path.exists():
            raise SourceError(f"workbook not found: {self.path}")

    def read_all(self) -> list[dict[str, Any]]:
        try:
            df = pd.read_excel(self.path, sheet_name=self.sheet_name, header=0)
        except (OSError, ValueError) as e:
            raise SourceError(f"failed to read {self.path.name}!{self.sheet_name}: {e}") from e

        df.columns = [str(c).strip() for c in df.columns]
        # 全列空の行 (書式だけ残った行) は読み飛ばす
        df = df.dropna(how="all")
        df = df.astype(object).where(pd.notna(df), None)
        return df.to_dict(orient="records")


def build_source(config: SourceConfig, credentials_file: str) -> TabularSource:
    if config.type == "google_sheets":
        if not config.spreadsheet_id:
            raise SourceError(f"sheet '{config.sheet_name}': google_sheets source requires spreadsheet_id")
        return GoogleSheetsSource(config.spreadsheet_id, config.sheet_name, credentials_file)
    if config.type == "excel":
        if not config.path:
            raise SourceError(f"sheet '{config.sheet_name}': excel source requires path")
        return ExcelSource(config.path, config.sheet_name)
    raise SourceError(f"unknown source type: {config.type}")
