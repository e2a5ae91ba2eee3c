from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pandas as pd

from listing_sync.cli import main as cli_main
from listing_sync.db.listing_store import InMemoryListingStore, StoreError

"""Partial failure: one bad row is logged and skipped, the rest of the window syncs."""


def test_partial_failure_writes_error_log(temp_workdir: Path, write_config, sample_workbooks, capsys):
    original_insert = InMemoryListingStore.insert

    def flaky_insert(self, fields):
        if fields["record_number"] == "AA10003":
            raise StoreError("insert failed: value too long for type character varying(20)")
        original_insert(self, fields)

    with patch.object(InMemoryListingStore, "insert", flaky_insert):
        code = cli_main(["--dry-run", "--json"])

    out = capsys.readouterr().out
    assert code == 2
    data = json.loads(next(line for line in out.splitlines() if line.startswith("{")))
    assert data["successfullyAdded"] == 2
    assert data["failed"] == 1
    assert data["errors"][0]["record_number"] == "AA10003"

    logs = list((temp_workdir / "logs").glob("sync-errors-*.log"))
    assert len(logs) == 1
    record = json.loads(logs[0].read_text(encoding="utf-8").strip())
    assert record["error_type"] == "STORE_ERROR"
    assert record["row_index"] == 2
    assert "error log written" in out


def test_auxiliary_sheet_missing_degrades(temp_workdir: Path, write_config, sample_workbooks, capsys):
    # 補助シートのタブ名が違う -> 読み込み失敗でも同期は続行
    aux_path = sample_workbooks[1]
    with pd.ExcelWriter(aux_path, engine="openpyxl") as writer:
        pd.DataFrame([{"物件番号": "AA10001"}]).to_excel(writer, sheet_name="別シート", index=False)

    code = cli_main(["--dry-run", "--json"])
    out = capsys.readouterr().out
    assert code == 0
    assert "WARN auxiliary sheet unavailable" in out
    data = json.loads(next(line for line in out.splitlines() if line.startswith("{")))
    assert data["auxiliaryAvailable"] is False
    assert data["successfullyAdded"] == 3
    log_text = next((temp_workdir / "logs").glob("*.log")).read_text(encoding="utf-8")
    assert "AUXILIARY_LOAD_ERROR" in log_text
