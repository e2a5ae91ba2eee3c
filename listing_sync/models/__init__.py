"""Domain models for the property listing sync.

This package contains the dataclasses shared across the sync: configuration,
the normalized spreadsheet row, per-run results and structured error records.
"""

from .config_models import DatabaseConfig, SourceConfig, StorageSearchConfig, SyncConfig
from .error_record import ErrorRecord
from .listing_row import ListingRow
from .sync_result import RowError, SyncResult

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "SourceConfig",
    "StorageSearchConfig",
    "SyncConfig",
    # Processing models
    "ErrorRecord",
    "ListingRow",
    "RowError",
    "SyncResult",
]
