from __future__ import annotations

import re

import pytest

from listing_sync.db.listing_store import SCHEMA_PATH, STICKY_COLUMNS, column_for
from listing_sync.models.listing_row import ListingRow

"""property_listings DDL contract: every field the sync writes or reads has a column."""

WRITTEN_BY_SYNC = (
    *ListingRow(record_number="AA1").listing_fields(),
    "storage_location",
    "spreadsheet_url",
    "derived_status",
    "updated_at",
    "created_at",
)


def _ddl_columns() -> set[str]:
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")
    return set(re.findall(r"^\s+([a-z_]+)\s+[A-Z]", ddl, flags=re.MULTILINE))


@pytest.mark.parametrize("field", sorted(set(WRITTEN_BY_SYNC) | set(STICKY_COLUMNS)))
def test_field_has_table_column(field):
    assert column_for(field) in _ddl_columns()


def test_business_key_is_unique():
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")
    assert re.search(r"property_number\s+TEXT NOT NULL UNIQUE", ddl)
