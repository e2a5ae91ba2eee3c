from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

"""Sync result models for the property listing sync.

SyncResult is what every run_batch call hands back to its caller, whether the
run succeeded, partially failed or failed before any row was touched.
"""

__all__ = [
    "RowError",
    "SyncResult",
    "TRIGGER_SOURCES",
    "RUN_LEVEL_RECORD_NUMBER",
]

TRIGGER_SOURCES = ("scheduled", "manual")

# 行に紐付かない (取得失敗など) エラーの record_number
RUN_LEVEL_RECORD_NUMBER = "N/A"


@dataclass(frozen=True)
class RowError:
    """Failure attributed to one record (or to the run, see RUN_LEVEL_RECORD_NUMBER)."""
    record_number: str
    message: str


@dataclass(frozen=True)
class SyncResult:
    """Aggregated outcome of one batch window.

    success is True only when no row failed and no run-level error occurred.
    """
    success: bool
    start_time: datetime
    end_time: datetime
    total_processed: int
    successfully_added: int
    successfully_updated: int
    failed: int
    trigger_source: str
    errors: list[RowError] = field(default_factory=list)
    start_index: int = 0  # ウィンドウ開始 (含む)
    end_index: int = 0  # ウィンドウ終了 (含まない)
    auxiliary_available: bool = True  # 補助シート読み込み成否

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the caller-facing shape (camelCase keys, ISO timestamps)."""
        return {
            "success": self.success,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "totalProcessed": self.total_processed,
            "successfullyAdded": self.successfully_added,
            "successfullyUpdated": self.successfully_updated,
            "failed": self.failed,
            "errors": [
                {"record_number": e.record_number, "message": e.message} for e in self.errors
            ],
            "triggerSource": self.trigger_source,
            "startIndex": self.start_index,
            "endIndex": self.end_index,
            "auxiliaryAvailable": self.auxiliary_available,
        }
