from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from ..db.listing_store import ListingStore, StoreError
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import DEFAULT_BATCH_SIZE, DEFAULT_TIMEZONE, SyncConfig
from ..models.error_record import (
    AUXILIARY_LOAD_ERROR,
    ROW_PROCESSING_ERROR,
    SOURCE_FETCH_ERROR,
    STORE_ERROR,
    ErrorRecord,
)
from ..models.sync_result import RUN_LEVEL_RECORD_NUMBER, TRIGGER_SOURCES, RowError, SyncResult
from ..sheets.normalizer import normalize_row, record_number_of
from ..sheets.sources import SourceError, TabularSource, build_source
from .auxiliary_cache import AuxiliaryLookup
from .progress import ProgressTracker
from .status import derive_status
from .storage_location import DriveFolderSearch, FolderSearch, StorageLocationResolver

"""Listing reconciliation: property list sheet -> property_listings table.

One run_batch call processes one window of the property list:

1. read every row of the primary sheet once
2. drop rows without 物件番号
3. slice [start_index, min(start_index + batch_size, n))
4. load the 業務依頼 sheet once (degrades to empty on failure)
5. per row, in sheet order: normalize -> find existing -> resolve sticky URLs
   -> derive sidebar status -> update or insert
6. a failing row is recorded and the loop moves on

The scheduler calls this every 15 minutes with a moving start_index, so
batch_size is what bounds a single invocation.
"""

logger = logging.getLogger(__name__)


class InitializationError(Exception):
    """Authentication against a tabular source failed; no batch can run."""


class SyncError(Exception):
    """Run-level misuse (e.g. run_batch before initialize)."""


class ListingReconciler:
    """Reconcile property list rows into the listing store.

    Holds no state between run_batch calls apart from the authenticated
    sources; the auxiliary snapshot is rebuilt for every call.
    """

    def __init__(
        self,
        primary: TabularSource,
        auxiliary: TabularSource | None,
        store: ListingStore,
        folder_search: FolderSearch | None = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
        error_log: ErrorLogBuffer | None = None,
        today: date | None = None,
    ) -> None:
        self.primary = primary
        self.auxiliary = auxiliary
        self.store = store
        self.folder_search = folder_search
        self.timezone = timezone
        self.error_log = error_log if error_log is not None else ErrorLogBuffer()
        self._fixed_today = today
        self._initialized = False

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        store: ListingStore,
        *,
        error_log: ErrorLogBuffer | None = None,
    ) -> ListingReconciler:
        folder_search: FolderSearch | None = None
        if config.storage_search.enabled:
            folder_search = DriveFolderSearch(
                config.credentials_file, config.storage_search.parent_folder_id
            )
        return cls(
            build_source(config.primary_source, config.credentials_file),
            build_source(config.auxiliary_source, config.credentials_file),
            store,
            folder_search,
            timezone=config.timezone,
            error_log=error_log,
        )

    def initialize(self) -> None:
        """Authenticate both sources. Idempotent; failures are not retried."""
        if self._initialized:
            return
        try:
            self.primary.authenticate()
            logger.info("primary sheet client initialized")
            if self.auxiliary is not None:
                self.auxiliary.authenticate()
                logger.info("auxiliary sheet client initialized")
        except SourceError as e:
            raise InitializationError(str(e)) from e
        self._initialized = True

    def today(self) -> date:
        if self._fixed_today is not None:
            return self._fixed_today
        return datetime.now(ZoneInfo(self.timezone)).date()

    def run_batch(
        self,
        trigger_source: str = "scheduled",
        batch_size: int = DEFAULT_BATCH_SIZE,
        start_index: int = 0,
    ) -> SyncResult:
        if trigger_source not in TRIGGER_SOURCES:
            raise ValueError(f"unknown trigger source: {trigger_source!r}")
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if start_index < 0:
            raise ValueError(f"start_index must not be negative, got {start_index}")
        if not self._initialized:
            raise SyncError("ListingReconciler not initialized")

        start_time = datetime.now(UTC)
        logger.info(
            "starting property listings sync trigger=%s batch_size=%d start_index=%d",
            trigger_source,
            batch_size,
            start_index,
        )

        try:
            all_rows = self.primary.read_all()
        except Exception as e:
            logger.error("failed to fetch primary sheet: %s", e)
            self.error_log.append(
                ErrorRecord.create(RUN_LEVEL_RECORD_NUMBER, -1, SOURCE_FETCH_ERROR, str(e))
            )
            self._flush_error_log()
            return SyncResult(
                success=False,
                start_time=start_time,
                end_time=datetime.now(UTC),
                total_processed=0,
                successfully_added=0,
                successfully_updated=0,
                failed=0,
                trigger_source=trigger_source,
                errors=[RowError(RUN_LEVEL_RECORD_NUMBER, str(e))],
                start_index=start_index,
                end_index=start_index,
            )

        non_empty = [row for row in all_rows if record_number_of(row)]
        end_index = max(start_index, min(start_index + batch_size, len(non_empty)))
        window = non_empty[start_index:end_index]
        logger.info(
            "processing rows %d-%d (%d rows; %d non-empty of %d total)",
            start_index,
            end_index,
            len(window),
            len(non_empty),
            len(all_rows),
        )

        auxiliary = AuxiliaryLookup(self.auxiliary)
        if window:
            auxiliary.ensure_loaded()
            if not auxiliary.available:
                self.error_log.append(
                    ErrorRecord.create(
                        RUN_LEVEL_RECORD_NUMBER, -1, AUXILIARY_LOAD_ERROR, auxiliary.load_error or ""
                    )
                )
        resolver = StorageLocationResolver(auxiliary, self.folder_search)
        today = self.today()

        added = 0
        updated = 0
        errors: list[RowError] = []

        with ProgressTracker(len(window)) as progress:
            for row_index, row in enumerate(window, start=start_index):
                record_number = record_number_of(row)
                progress.start_row(record_number)
                try:
                    outcome = self._sync_row(row, auxiliary, resolver, today)
                except StoreError as e:
                    self._record_row_failure(errors, record_number, row_index, STORE_ERROR, e)
                    progress.finish_row(success=False)
                    continue
                except Exception as e:
                    self._record_row_failure(errors, record_number, row_index, ROW_PROCESSING_ERROR, e)
                    progress.finish_row(success=False)
                    continue

                if outcome == "added":
                    added += 1
                else:
                    updated += 1
                progress.set_postfix(added=added, updated=updated, failed=len(errors))
                progress.finish_row(success=True)

        self._flush_error_log()

        return SyncResult(
            success=not errors,
            start_time=start_time,
            end_time=datetime.now(UTC),
            total_processed=len(window),
            successfully_added=added,
            successfully_updated=updated,
            failed=len(errors),
            trigger_source=trigger_source,
            errors=errors,
            start_index=start_index,
            end_index=end_index,
            auxiliary_available=auxiliary.available,
        )

    def _sync_row(
        self,
        row: Mapping[str, Any],
        auxiliary: AuxiliaryLookup,
        resolver: StorageLocationResolver,
        today: date,
    ) -> str:
        listing = normalize_row(row)
        record_number = listing.record_number

        existing = self.store.find(record_number)
        current = existing or {}
        if existing and existing.get("raw_status") != listing.raw_status:
            logger.debug(
                "record_number=%s raw_status %r -> %r",
                record_number,
                existing.get("raw_status"),
                listing.raw_status,
            )

        storage_location = resolver.resolve_storage_location(
            record_number, current.get("storage_location")
        )
        spreadsheet_url = resolver.resolve_spreadsheet_url(
            record_number, current.get("spreadsheet_url")
        )
        derived_status = derive_status(listing, auxiliary, today)

        now = datetime.now(UTC)
        fields: dict[str, Any] = {
            **listing.listing_fields(),
            "storage_location": storage_location,
            "spreadsheet_url": spreadsheet_url,
            "derived_status": derived_status,
            "updated_at": now,
        }

        if existing is not None:
            self.store.update(record_number, fields)
            logger.info("updated %s status=%r", record_number, derived_status)
            return "updated"

        fields["created_at"] = now
        self.store.insert(fields)
        logger.info("added %s status=%r", record_number, derived_status)
        return "added"

    def _record_row_failure(
        self,
        errors: list[RowError],
        record_number: str,
        row_index: int,
        error_type: str,
        exc: Exception,
    ) -> None:
        message = str(exc) or type(exc).__name__
        logger.error("error processing %s: %s", record_number, message)
        errors.append(RowError(record_number or "unknown", message))
        self.error_log.append(ErrorRecord.create(record_number, row_index, error_type, message))

    def _flush_error_log(self) -> None:
        try:
            path = self.error_log.flush()
        except OSError as e:
            # エラーログ書き出し失敗で同期結果は変えない
            logger.warning("failed to write error log: %s", e)
            return
        if path is not None:
            logger.info("error log written: %s", path)


def run_full_sync(
    reconciler: ListingReconciler,
    trigger_source: str = "scheduled",
    batch_size: int = DEFAULT_BATCH_SIZE,
    start_index: int = 0,
) -> SyncResult:
    """Initialize (authenticate) if needed, then sync one batch window.

    InitializationError propagates to the caller; everything after
    authentication is reported through the returned SyncResult.
    """
    reconciler.initialize()
    return reconciler.run_batch(trigger_source, batch_size, start_index)
