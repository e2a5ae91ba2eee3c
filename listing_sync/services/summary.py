from __future__ import annotations

from listing_sync.models.sync_result import SyncResult

"""Summary line rendering for a sync run.

Format:
SUMMARY trigger={trigger} window={start}-{end} processed={n} added={a}
updated={u} failed={f} elapsed_sec={s} success={true|false}
"""


def _format_seconds(seconds: float) -> str:
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        # Format very small numbers to avoid scientific notation
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: SyncResult) -> str:
    """Render the SUMMARY line for one batch window.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2025, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = SyncResult(
        ...     success=True, start_time=start, end_time=end, total_processed=50,
        ...     successfully_added=5, successfully_updated=45, failed=0,
        ...     trigger_source="scheduled", start_index=200, end_index=250,
        ... )
        >>> render_summary_line(result)
        'SUMMARY trigger=scheduled window=200-250 processed=50 added=5 updated=45 failed=0 elapsed_sec=2 success=true'
    """
    return (
        f"SUMMARY trigger={result.trigger_source} "
        f"window={result.start_index}-{result.end_index} "
        f"processed={result.total_processed} "
        f"added={result.successfully_added} "
        f"updated={result.successfully_updated} "
        f"failed={result.failed} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)} "
        f"success={'true' if result.success else 'false'}"
    )
