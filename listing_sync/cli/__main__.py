from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from contextlib import ExitStack
from dataclasses import asdict
from pathlib import Path

from dotenv import load_dotenv

from listing_sync.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from listing_sync.db.listing_store import InMemoryListingStore, ListingStore, StoreError, connect
from listing_sync.logging.init import log_summary, set_debug, setup_logging
from listing_sync.models.config_models import SyncConfig
from listing_sync.models.sync_result import TRIGGER_SOURCES, SyncResult
from listing_sync.services.auxiliary_cache import AuxiliaryLookup
from listing_sync.services.reconciler import InitializationError, ListingReconciler, run_full_sync
from listing_sync.services.status import derive_status
from listing_sync.services.summary import render_summary_line
from listing_sync.sheets.normalizer import normalize_row, record_number_of
from listing_sync.sheets.sources import SourceError

"""CLI entrypoint.

Flow:
- Load .env (overrides the process environment) and config/sync.yml
- Authenticate both sheets
- Sync one batch window into PostgreSQL (or an in-memory store for dry runs)
- Print the SUMMARY line (and the JSON result with --json)

Exit codes:
    0  window synced without failures
    2  run completed but rows failed, or the primary sheet could not be read
    1  fatal: bad config, authentication failure, database unreachable
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

INSPECT_SAMPLE_ROWS = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True により .env の値で既存環境変数を上書きする (DB 接続情報・シート ID を最優先化)。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Property list spreadsheet -> PostgreSQL listing sync")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to sync.yml")
    p.add_argument("--trigger", choices=TRIGGER_SOURCES, default="scheduled", help="Trigger source label")
    p.add_argument("--batch-size", type=int, default=None, help="Rows per window (overrides config)")
    p.add_argument("--start-index", type=int, default=None, help="Window start (overrides config)")
    p.add_argument("--dry-run", action="store_true", help="Sync into an in-memory store instead of PostgreSQL")
    p.add_argument("--json", action="store_true", help="Print the sync result as JSON")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet headers & first rows then exit")
    return p.parse_args(argv)


def _inspect_data(reconciler: ListingReconciler) -> int:
    try:
        reconciler.initialize()
        rows = reconciler.primary.read_all()
    except Exception as e:
        print(f"inspect: primary sheet unavailable: {e}")
        return EXIT_FATAL

    headers = list(rows[0].keys()) if rows else []
    non_empty = [r for r in rows if record_number_of(r)]
    print(f"HEADERS: {headers}")
    print(f"ROWS: total={len(rows)} non_empty={len(non_empty)}")

    auxiliary = AuxiliaryLookup(reconciler.auxiliary)
    if non_empty:
        auxiliary.ensure_loaded()
    today = reconciler.today()
    for r in non_empty[:INSPECT_SAMPLE_ROWS]:
        try:
            listing = normalize_row(r)
            status = derive_status(listing, auxiliary, today)
        except Exception as e:  # pragma: no cover
            print(f"  ROW: {record_number_of(r)} error={e}")
            continue
        # date を含むため isoformat で文字列化
        safe = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in asdict(listing).items()}
        print(f"  ROW: {json.dumps(safe, ensure_ascii=False)}")
        print(f"    derived_status={status!r}")
    return 0


def _run(
    cfg: SyncConfig,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> SyncResult:
    batch_size = args.batch_size if args.batch_size is not None else cfg.batch_size
    start_index = args.start_index if args.start_index is not None else cfg.start_index

    with ExitStack() as stack:
        store: ListingStore
        # DB 接続制御: --dry-run もしくは DISABLE_DB_CONNECT=1 で in-memory
        if args.dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.debug("DB connect disabled -> in-memory store")
            store = InMemoryListingStore()
        else:
            # 接続失敗は StoreError として main へ (in-memory には切り替えない)
            store = stack.enter_context(connect(cfg.database))
            logger.info("mode=live table=%s", cfg.database.table)

        reconciler = ListingReconciler.from_config(cfg, store)
        return run_full_sync(reconciler, args.trigger, batch_size, start_index)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # [] を渡されたとき sys.argv[1:] (pytest の引数) を拾わないよう None のときだけ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        if args.inspect_data:
            return _inspect_data(ListingReconciler.from_config(cfg, InMemoryListingStore()))
        result = _run(cfg, args, logger)
    except (InitializationError, SourceError) as e:
        logger.error(f"initialization: {e}")
        return EXIT_FATAL
    except StoreError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    except ValueError as e:
        # --batch-size 0 など
        logger.error(f"arguments: {e}")
        return EXIT_FATAL

    summary_line = render_summary_line(result)
    # log_summary が "SUMMARY " を付けるので除去
    log_summary(summary_line[len("SUMMARY "):])

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False))

    if not result.success:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
