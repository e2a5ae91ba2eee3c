from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

This module defines the ErrorRecord dataclass used for structured error logging
during a listing sync run. It supports row_index=-1 as a sentinel value for
run-level errors where no single spreadsheet row is responsible (primary sheet
fetch failure, auxiliary sheet load failure).
"""

__all__ = [
    "ErrorRecord",
    "ROW_PROCESSING_ERROR",
    "STORE_ERROR",
    "SOURCE_FETCH_ERROR",
    "AUXILIARY_LOAD_ERROR",
]

ROW_PROCESSING_ERROR = "ROW_PROCESSING_ERROR"
STORE_ERROR = "STORE_ERROR"
SOURCE_FETCH_ERROR = "SOURCE_FETCH_ERROR"
AUXILIARY_LOAD_ERROR = "AUXILIARY_LOAD_ERROR"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        record_number: 物件番号 of the failing row, or "N/A" for run-level errors
        row_index: Position in the non-empty primary rows. Use -1 for run-level errors
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Error message or description
    """
    timestamp: str  # ISO8601 UTC
    record_number: str
    row_index: int  # 不明な場合 -1 許容
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(record_number: str, row_index: int, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            record_number=record_number,
            row_index=row_index,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        """Serialize ErrorRecord to JSON Lines format.

        Returns:
            JSON string representation without extra keys (contract enforced)
        """
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
