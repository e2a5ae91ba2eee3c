# Shared pytest fixtures
from __future__ import annotations

import logging
import tempfile
from datetime import date
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from listing_sync.db.listing_store import InMemoryListingStore
from listing_sync.logging.error_log import ErrorLogBuffer
from listing_sync.logging.init import LOGGER_NAME, reset_logging
from listing_sync.sheets.sources import SourceError

# 2025-01-21 (serial 45678)
TODAY = date(2025, 1, 21)

ENV_VARS = [
    "PROPERTY_LISTING_SPREADSHEET_ID",
    "PROPERTY_LISTING_SHEET_NAME",
    "GYOMU_LIST_SPREADSHEET_ID",
    "GYOMU_LIST_SHEET_NAME",
    "GOOGLE_SERVICE_ACCOUNT_KEY_PATH",
    "DATABASE_URL",
    "PGDSN",
    "PGHOST",
    "PGPORT",
    "PGUSER",
    "PGPASSWORD",
    "PGDATABASE",
    "DISABLE_DB_CONNECT",
]


@pytest.fixture(autouse=True)
def _isolate_env_and_logging(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_logging()
    yield
    # capsys のストリームが閉じた後に古い handler へ書かないよう掃除
    logging.getLogger(LOGGER_NAME).handlers.clear()
    reset_logging()


class FakeSource:
    """In-memory TabularSource. `error` is raised from read_all (or authenticate)."""

    def __init__(
        self,
        rows: list[dict[str, Any]] | None = None,
        error: Exception | None = None,
        auth_error: Exception | None = None,
    ) -> None:
        self.rows = rows or []
        self.error = error
        self.auth_error = auth_error
        self.authenticate_calls = 0
        self.read_calls = 0

    def authenticate(self) -> None:
        self.authenticate_calls += 1
        if self.auth_error is not None:
            raise self.auth_error

    def read_all(self) -> list[dict[str, Any]]:
        self.read_calls += 1
        if self.error is not None:
            raise self.error
        return [dict(r) for r in self.rows]


class FakeFolderSearch:
    def __init__(self, results: dict[str, str] | None = None) -> None:
        self.results = results or {}
        self.calls: list[str] = []

    def search(self, record_number: str) -> str | None:
        self.calls.append(record_number)
        return self.results.get(record_number)


@pytest.fixture()
def today() -> date:
    return TODAY


@pytest.fixture()
def make_source():
    return FakeSource


@pytest.fixture()
def make_folder_search():
    return FakeFolderSearch


@pytest.fixture()
def failing_source() -> FakeSource:
    return FakeSource(error=SourceError("failed to read sheet '物件': quota exceeded"))


@pytest.fixture()
def store() -> InMemoryListingStore:
    return InMemoryListingStore()


@pytest.fixture()
def error_log(tmp_path: Path) -> ErrorLogBuffer:
    return ErrorLogBuffer(logs_dir=tmp_path / "logs")


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """primary_source:
  type: excel
  path: ./data/property_list.xlsx
  sheet_name: 物件
auxiliary_source:
  type: excel
  path: ./data/gyomu_list.xlsx
  sheet_name: 業務依頼
timezone: Asia/Tokyo
batch_size: 100
start_index: 0
storage_search:
  enabled: false
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def primary_rows() -> list[dict[str, Any]]:
    return [
        {"物件番号": "AA10001", "atbb成約済み/非公開": "一般・公開中", "所在地": "大分市中央町1-1", "売買価格": 12_000_000},
        {"物件番号": "AA10002", "atbb成約済み/非公開": "専任・公開中", "所在地": "別府市北浜2-2", "担当名（営業）": "山本"},
        {"物件番号": "AA10003", "atbb成約済み/非公開": "一般・公開前", "所在地": "由布市湯布院3-3"},
    ]


def auxiliary_rows() -> list[dict[str, Any]]:
    return [
        {
            "物件番号": "AA10001",
            "公開予定日": 45670,
            "スプシURL": "https://docs.google.com/spreadsheets/d/sheet-AA10001",
            "格納先URL": "https://drive.google.com/drive/folders/folder-AA10001",
        },
    ]


@pytest.fixture()
def sample_workbooks(temp_workdir: Path) -> tuple[Path, Path]:
    """Write data/property_list.xlsx (物件) and data/gyomu_list.xlsx (業務依頼)."""
    primary = temp_workdir / "data" / "property_list.xlsx"
    auxiliary = temp_workdir / "data" / "gyomu_list.xlsx"
    with pd.ExcelWriter(primary, engine="openpyxl") as writer:
        pd.DataFrame(primary_rows()).to_excel(writer, sheet_name="物件", index=False)
    with pd.ExcelWriter(auxiliary, engine="openpyxl") as writer:
        pd.DataFrame(auxiliary_rows()).to_excel(writer, sheet_name="業務依頼", index=False)
    return primary, auxiliary
