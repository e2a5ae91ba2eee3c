from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the property listing sync.

These are the typed shapes produced by listing_sync/config/loader.py.
Environment overrides are applied before the objects are built, so every
value here is already final.
"""

DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_BATCH_SIZE = 100
DEFAULT_TABLE = "property_listings"


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None
    port: int | None
    user: str | None
    password: str | None
    database: str | None
    dsn: str | None
    table: str = DEFAULT_TABLE


@dataclass(frozen=True)
class SourceConfig:
    """Location of one tabular feed (Google Sheets tab or local workbook sheet)."""
    type: str  # google_sheets | excel
    sheet_name: str
    spreadsheet_id: str | None = None
    path: str | None = None  # excel のみ


@dataclass(frozen=True)
class StorageSearchConfig:
    enabled: bool = True
    parent_folder_id: str | None = None  # None = ドライブ全体を検索


@dataclass(frozen=True)
class SyncConfig:
    """Root configuration object for a sync run."""
    primary_source: SourceConfig
    auxiliary_source: SourceConfig
    database: DatabaseConfig
    credentials_file: str = "./google-service-account.json"
    timezone: str = DEFAULT_TIMEZONE
    batch_size: int = DEFAULT_BATCH_SIZE
    start_index: int = 0
    storage_search: StorageSearchConfig = field(default_factory=StorageSearchConfig)
