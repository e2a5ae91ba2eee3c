from __future__ import annotations

__all__ = ["main"]


def main(argv: list[str] | None = None) -> int:
    """Run the sync CLI (see listing_sync.cli.__main__)."""
    # __main__ を遅延 import (python -m 実行時の二重 import 警告回避)
    from listing_sync.cli.__main__ import main as _main

    return _main(argv)
