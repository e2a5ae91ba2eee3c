from __future__ import annotations

import json
from datetime import date

import pytest

from listing_sync.db.listing_store import InMemoryListingStore, StoreError
from listing_sync.services.reconciler import (
    InitializationError,
    ListingReconciler,
    SyncError,
    run_full_sync,
)
from listing_sync.sheets.sources import SourceError

TODAY = date(2025, 1, 21)
FOLDER = "https://drive.google.com/drive/folders/"
SHEET = "https://docs.google.com/spreadsheets/"


def _rows(n: int) -> list[dict]:
    return [
        {"物件番号": f"AA{i:05d}", "atbb成約済み/非公開": "一般・公開中", "所在地": f"大分市{i}"}
        for i in range(n)
    ]


def _reconciler(primary, store, error_log, auxiliary=None, folder_search=None):
    r = ListingReconciler(primary, auxiliary, store, folder_search, error_log=error_log, today=TODAY)
    r.initialize()
    return r


def test_window_slicing(make_source, store, error_log):
    r = _reconciler(make_source(rows=_rows(250)), store, error_log)
    result = r.run_batch("scheduled", batch_size=100, start_index=200)
    assert result.success
    assert result.total_processed == 50
    assert result.successfully_added == 50
    assert (result.start_index, result.end_index) == (200, 250)
    assert sorted(store.rows) == [f"AA{i:05d}" for i in range(200, 250)]


def test_window_ignores_empty_rows(make_source, store, error_log):
    rows = _rows(4)
    rows.insert(1, {"物件番号": "", "所在地": "空行"})
    rows.insert(3, {"所在地": "番号なし"})
    r = _reconciler(make_source(rows=rows), store, error_log)
    result = r.run_batch(batch_size=2, start_index=2)
    assert result.total_processed == 2
    assert sorted(store.rows) == ["AA00002", "AA00003"]


def test_window_past_end_is_empty_success(make_source, store, error_log):
    aux = make_source(rows=[])
    r = _reconciler(make_source(rows=_rows(10)), store, error_log, auxiliary=aux)
    result = r.run_batch(batch_size=100, start_index=500)
    assert result.success
    assert result.total_processed == 0
    assert (result.start_index, result.end_index) == (500, 500)
    # 空ウィンドウでは補助シートを読まない
    assert aux.read_calls == 0


def test_second_run_updates_and_keeps_urls(make_source, store, error_log, make_folder_search):
    aux = make_source(
        rows=[
            {"物件番号": "AA00000", "格納先URL": FOLDER + "aux0", "スプシURL": SHEET + "d/aux0"},
        ]
    )
    search = make_folder_search({"AA00001": FOLDER + "found1"})
    r = _reconciler(make_source(rows=_rows(2)), store, error_log, auxiliary=aux, folder_search=search)

    first = r.run_batch(batch_size=10)
    assert (first.successfully_added, first.successfully_updated) == (2, 0)
    assert store.rows["AA00000"]["storage_location"] == FOLDER + "aux0"
    assert store.rows["AA00000"]["spreadsheet_url"] == SHEET + "d/aux0"
    assert store.rows["AA00001"]["storage_location"] == FOLDER + "found1"
    assert store.rows["AA00001"]["spreadsheet_url"] is None

    # ストア側で手修正された値は上書きされない
    store.rows["AA00000"]["storage_location"] = FOLDER + "manual"
    aux.rows[0]["格納先URL"] = FOLDER + "changed"
    search.calls.clear()

    second = r.run_batch(batch_size=10)
    assert (second.successfully_added, second.successfully_updated) == (0, 2)
    assert store.rows["AA00000"]["storage_location"] == FOLDER + "manual"
    assert store.rows["AA00001"]["storage_location"] == FOLDER + "found1"
    assert search.calls == []


def test_listing_fields_overwritten_on_update(make_source, error_log):
    store = InMemoryListingStore(
        {"AA00000": {"record_number": "AA00000", "address": "旧住所", "raw_status": "一般・公開前"}}
    )
    r = _reconciler(make_source(rows=_rows(1)), store, error_log)
    result = r.run_batch()
    assert result.successfully_updated == 1
    saved = store.rows["AA00000"]
    assert saved["address"] == "大分市0"
    assert saved["raw_status"] == "一般・公開中"
    assert saved["derived_status"] == "一般公開中物件"
    assert "updated_at" in saved


def test_derived_status_uses_auxiliary_schedule(make_source, store, error_log):
    primary = make_source(rows=[{"物件番号": "AA1", "atbb成約済み/非公開": "専任・公開前"}])
    aux = make_source(rows=[{"物件番号": "AA1", "公開予定日": 45678}])
    r = _reconciler(primary, store, error_log, auxiliary=aux)
    r.run_batch()
    assert store.rows["AA1"]["derived_status"] == "本日公開予定"


class FlakyStore(InMemoryListingStore):
    def __init__(self, fail_on: str) -> None:
        super().__init__()
        self.fail_on = fail_on

    def insert(self, fields):
        if fields["record_number"] == self.fail_on:
            raise StoreError("insert failed: value too long for type character varying(255)")
        super().insert(fields)


def test_row_failure_is_isolated(make_source, error_log):
    store = FlakyStore("AA00001")
    r = _reconciler(make_source(rows=_rows(3)), store, error_log)
    result = r.run_batch()
    assert not result.success
    assert result.total_processed == 3
    assert result.successfully_added == 2
    assert result.failed == 1
    assert result.errors[0].record_number == "AA00001"
    assert "value too long" in result.errors[0].message
    assert sorted(store.rows) == ["AA00000", "AA00002"]

    log_files = list(error_log._logs_dir.glob("sync-errors-*.log"))
    assert len(log_files) == 1
    record = json.loads(log_files[0].read_text(encoding="utf-8").splitlines()[0])
    assert record["record_number"] == "AA00001"
    assert record["row_index"] == 1
    assert record["error_type"] == "STORE_ERROR"


def test_unexpected_row_exception_is_recorded(make_source, error_log):
    class BrokenFind(InMemoryListingStore):
        def find(self, record_number):
            if record_number == "AA00000":
                raise KeyError("id")
            return super().find(record_number)

    r = _reconciler(make_source(rows=_rows(2)), BrokenFind(), error_log)
    result = r.run_batch()
    assert result.failed == 1
    assert result.successfully_added == 1
    assert error_log.records == []  # flush 済み
    line = next(error_log._logs_dir.glob("*.log")).read_text(encoding="utf-8")
    assert "ROW_PROCESSING_ERROR" in line


def test_primary_fetch_failure_returns_failed_result(failing_source, store, error_log):
    r = _reconciler(failing_source, store, error_log)
    result = r.run_batch("manual", batch_size=100, start_index=0)
    assert not result.success
    assert result.total_processed == 0
    assert result.failed == 0
    assert result.trigger_source == "manual"
    assert len(result.errors) == 1
    assert result.errors[0].record_number == "N/A"
    assert "quota exceeded" in result.errors[0].message
    assert store.rows == {}


def test_auxiliary_failure_degrades(make_source, store, error_log):
    primary = make_source(rows=[{"物件番号": "AA1", "atbb成約済み/非公開": "専任・公開前"}])
    aux = make_source(error=SourceError("The caller does not have permission"))
    r = _reconciler(primary, store, error_log, auxiliary=aux)
    result = r.run_batch()
    assert result.success
    assert result.auxiliary_available is False
    assert result.successfully_added == 1
    # 公開予定日が読めないので 本日公開予定 にはならない
    assert store.rows["AA1"]["derived_status"] == "公開前情報"
    text = next(error_log._logs_dir.glob("*.log")).read_text(encoding="utf-8")
    assert "AUXILIARY_LOAD_ERROR" in text


def test_run_before_initialize_raises(make_source, store, error_log):
    r = ListingReconciler(make_source(rows=[]), None, store, error_log=error_log)
    with pytest.raises(SyncError):
        r.run_batch()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"trigger_source": "webhook"},
        {"batch_size": 0},
        {"start_index": -1},
    ],
)
def test_invalid_arguments(make_source, store, error_log, kwargs):
    r = _reconciler(make_source(rows=[]), store, error_log)
    with pytest.raises(ValueError):
        r.run_batch(**kwargs)


def test_initialize_failure(make_source, store, error_log):
    primary = make_source(auth_error=SourceError("credentials file not found: ./key.json"))
    r = ListingReconciler(primary, None, store, error_log=error_log)
    with pytest.raises(InitializationError, match="credentials file not found"):
        r.initialize()


def test_initialize_is_idempotent(make_source, store, error_log):
    primary = make_source(rows=[])
    aux = make_source(rows=[])
    r = ListingReconciler(primary, aux, store, error_log=error_log)
    r.initialize()
    r.initialize()
    assert primary.authenticate_calls == 1
    assert aux.authenticate_calls == 1


def test_run_full_sync(make_source, store, error_log):
    r = ListingReconciler(make_source(rows=_rows(3)), None, store, error_log=error_log, today=TODAY)
    result = run_full_sync(r, "manual", batch_size=2, start_index=0)
    assert result.success
    assert result.total_processed == 2
    assert result.to_dict()["triggerSource"] == "manual"


def test_no_error_log_file_on_clean_run(make_source, store, error_log):
    r = _reconciler(make_source(rows=_rows(2)), store, error_log)
    r.run_batch()
    assert not error_log._logs_dir.exists() or not list(error_log._logs_dir.glob("*.log"))
