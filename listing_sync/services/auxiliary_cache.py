from __future__ import annotations

import logging
from typing import Any

from listing_sync.sheets.normalizer import RECORD_NUMBER_COLUMN, to_text
from listing_sync.sheets.sources import TabularSource

"""Auxiliary (業務依頼) sheet lookup cache.

One instance lives for exactly one run_batch call: the sheet is read once
before the row loop and every row of the window looks up the same snapshot.

If the sheet cannot be read the cache degrades to an empty index. Lookups then
return None, the rules that depend on 公開予定日 never match, and the primary
sync carries on.
"""

__all__ = [
    "AuxiliaryLookup",
    "SPREADSHEET_URL_COLUMN",
    "STORAGE_URL_COLUMN",
    "SCHEDULED_DATE_COLUMN",
]

SPREADSHEET_URL_COLUMN = "スプシURL"
STORAGE_URL_COLUMN = "格納先URL"
SCHEDULED_DATE_COLUMN = "公開予定日"

logger = logging.getLogger(__name__)


class AuxiliaryLookup:
    def __init__(self, source: TabularSource | None) -> None:
        self._source = source
        self._index: dict[str, dict[str, Any]] | None = None
        self.load_error: str | None = None

    @property
    def loaded(self) -> bool:
        return self._index is not None

    @property
    def available(self) -> bool:
        """False when the load was attempted and failed (degraded mode)."""
        return self.load_error is None

    def ensure_loaded(self) -> None:
        """Read the whole auxiliary sheet once. Never raises on source failure."""
        if self._index is not None:
            return
        if self._source is None:
            self._index = {}
            return
        try:
            rows = self._source.read_all()
        except Exception as e:
            self.load_error = str(e) or type(e).__name__
            logger.warning("auxiliary sheet unavailable, continuing without it: %s", e)
            self._index = {}
            return

        index: dict[str, dict[str, Any]] = {}
        for row in rows:
            key = to_text(row.get(RECORD_NUMBER_COLUMN))
            if key:
                # 物件番号の重複は先勝ち
                index.setdefault(key, row)
        self._index = index
        logger.info("auxiliary sheet loaded rows=%d keys=%d", len(rows), len(index))

    def lookup(self, record_number: str, column: str) -> Any:
        if self._index is None:
            self.ensure_loaded()
        row = (self._index or {}).get(record_number)
        if row is None:
            return None
        value = row.get(column)
        if value is None or (isinstance(value, str) and value.strip() == ""):
            return None
        return value

    def __len__(self) -> int:
        return len(self._index or {})
