from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from listing_sync.services.auxiliary_cache import (
    SPREADSHEET_URL_COLUMN,
    STORAGE_URL_COLUMN,
    AuxiliaryLookup,
)
from listing_sync.sheets.normalizer import to_text

"""Sticky URL resolution (格納先 folder URL, 業務依頼 spreadsheet URL).

Both URLs are only (re)computed while the stored value is missing or does not
have the expected prefix; a valid stored value is returned untouched, so an
out-of-band correction in the store survives every later sync.

storage_location priority:
    1. stored value           (if it has the Drive folder prefix)
    2. 業務依頼 格納先URL      (if it has the Drive folder prefix)
    3. FolderSearch.search()  (trusted as-is, not prefix-checked)

spreadsheet_url priority:
    1. stored value           (if it has the Sheets prefix)
    2. 業務依頼 スプシURL      (if it has the Sheets prefix)
"""

__all__ = [
    "DRIVE_FOLDER_PREFIX",
    "SPREADSHEET_PREFIX",
    "FolderSearch",
    "DriveFolderSearch",
    "StorageLocationResolver",
    "is_storage_url",
    "is_spreadsheet_url",
]

DRIVE_FOLDER_PREFIX = "https://drive.google.com/drive/folders/"
SPREADSHEET_PREFIX = "https://docs.google.com/spreadsheets/"

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.readonly"]
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

logger = logging.getLogger(__name__)


def is_storage_url(value: Any) -> bool:
    return isinstance(value, str) and value.strip().startswith(DRIVE_FOLDER_PREFIX)


def is_spreadsheet_url(value: Any) -> bool:
    return isinstance(value, str) and value.strip().startswith(SPREADSHEET_PREFIX)


class FolderSearch(Protocol):
    def search(self, record_number: str) -> str | None: ...


class DriveFolderSearch:
    """Find a listing's Drive folder by record number (folder name contains it).

    Results, including misses, are memoized for the lifetime of the instance.
    API failures are logged and reported as "not found". When the client
    cannot be built at all (missing or invalid credentials) the search is
    disabled for the rest of the instance after one warning.
    """

    def __init__(self, credentials_file: str, parent_folder_id: str | None = None) -> None:
        self.credentials_file = credentials_file
        self.parent_folder_id = parent_folder_id
        self._service: Any = None
        self._cache: dict[str, str | None] = {}
        self.disabled = False

    def _get_service(self) -> Any:
        if self._service is not None:
            return self._service
        creds_path = Path(self.credentials_file)
        if not creds_path.exists():
            raise FileNotFoundError(f"Credentials file not found: {creds_path}")
        creds = service_account.Credentials.from_service_account_file(
            str(creds_path), scopes=DRIVE_SCOPES
        )
        self._service = build("drive", "v3", credentials=creds, cache_discovery=False)
        return self._service

    def _query(self, record_number: str) -> str:
        escaped = record_number.replace("\\", "\\\\").replace("'", "\\'")
        q = f"mimeType='{FOLDER_MIME_TYPE}' and name contains '{escaped}' and trashed=false"
        if self.parent_folder_id:
            q += f" and '{self.parent_folder_id}' in parents"
        return q

    def search(self, record_number: str) -> str | None:
        if self.disabled:
            return None
        if record_number in self._cache:
            return self._cache[record_number]
        try:
            service = self._get_service()
        except (GoogleAuthError, OSError, ValueError) as e:
            # 認証情報が無い・壊れている場合は run の残りで再試行しない
            self.disabled = True
            logger.warning("drive folder search disabled: %s", e)
            return None
        try:
            response = (
                service.files()
                .list(
                    q=self._query(record_number),
                    fields="files(id, name)",
                    pageSize=10,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                )
                .execute()
            )
        except (HttpError, GoogleAuthError, OSError) as e:
            logger.warning("drive folder search failed record_number=%s: %s", record_number, e)
            return None

        files = response.get("files", [])
        url = f"{DRIVE_FOLDER_PREFIX}{files[0]['id']}" if files else None
        self._cache[record_number] = url
        return url


class StorageLocationResolver:
    def __init__(self, auxiliary: AuxiliaryLookup, folder_search: FolderSearch | None = None) -> None:
        self.auxiliary = auxiliary
        self.folder_search = folder_search

    def resolve_storage_location(self, record_number: str, existing: Any) -> str | None:
        if is_storage_url(existing):
            return existing.strip()

        hint = to_text(self.auxiliary.lookup(record_number, STORAGE_URL_COLUMN))
        if is_storage_url(hint):
            logger.debug("record_number=%s storage_location from auxiliary sheet", record_number)
            return hint

        if self.folder_search is None:
            return None
        found = self.folder_search.search(record_number)
        if found:
            logger.debug("record_number=%s storage_location from folder search", record_number)
        else:
            logger.debug("record_number=%s storage_location not found", record_number)
        return found or None

    def resolve_spreadsheet_url(self, record_number: str, existing: Any) -> str | None:
        if is_spreadsheet_url(existing):
            return existing.strip()
        hint = to_text(self.auxiliary.lookup(record_number, SPREADSHEET_URL_COLUMN))
        if is_spreadsheet_url(hint):
            return hint
        return None
