from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

import psycopg2
import psycopg2.extras
from psycopg2 import sql

from listing_sync.models.config_models import DatabaseConfig

"""Relational store for property listings.

The sync only needs three keyed operations on property_listings, keyed by its
unique property_number column. Callers use logical field names; COLUMN_NAMES
maps the few that differ from the table (property_listings.sql):

- find(record_number)  -> existing row dict, or None when not found
- update(record_number, fields)
- insert(fields)

"Not found" is a normal return value (None); every other failure is raised as
StoreError so the reconciler can record it against that one row.

Each operation runs in its own transaction (commit on success, rollback on
failure); no transaction spans several rows.
"""

__all__ = [
    "StoreError",
    "ListingStore",
    "PostgresListingStore",
    "InMemoryListingStore",
    "resolve_dsn",
    "connect",
    "STICKY_COLUMNS",
    "COLUMN_NAMES",
    "column_for",
    "SCHEMA_PATH",
]

# find() が返す列 (sticky 判定に必要な分だけ)
STICKY_COLUMNS = ("id", "record_number", "raw_status", "storage_location", "spreadsheet_url")

# 論理フィールド名と property_listings の列名が異なるもの (他は同名)
COLUMN_NAMES = {
    "record_number": "property_number",
    "raw_status": "atbb_status",
    "derived_status": "sidebar_status",
}

SCHEMA_PATH = Path(__file__).with_name("property_listings.sql")


def column_for(field: str) -> str:
    return COLUMN_NAMES.get(field, field)


class StoreError(Exception):
    """Store failure other than "not found"."""


class ListingStore(Protocol):
    def find(self, record_number: str) -> dict[str, Any] | None: ...

    def update(self, record_number: str, fields: Mapping[str, Any]) -> None: ...

    def insert(self, fields: Mapping[str, Any]) -> None: ...


class PostgresListingStore:
    def __init__(self, connection: Any, table: str = "property_listings") -> None:
        self.connection = connection
        self.table = table

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Any]:
        cur = self.connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        try:
            yield cur
            self.connection.commit()
        except psycopg2.Error as e:
            self.connection.rollback()
            raise StoreError(f"{action} failed: {e}") from e
        except StoreError:
            self.connection.rollback()
            raise
        finally:
            cur.close()

    def find(self, record_number: str) -> dict[str, Any] | None:
        # 列名を論理フィールド名に別名付けし、RealDictCursor の key を揃える
        query = sql.SQL("SELECT {cols} FROM {table} WHERE {key} = %s LIMIT 1").format(
            cols=sql.SQL(", ").join(
                sql.SQL("{} AS {}").format(sql.Identifier(column_for(c)), sql.Identifier(c))
                for c in STICKY_COLUMNS
            ),
            table=sql.Identifier(self.table),
            key=sql.Identifier(column_for("record_number")),
        )
        with self._transaction("select") as cur:
            cur.execute(query, (record_number,))
            row = cur.fetchone()
        return dict(row) if row is not None else None

    def update(self, record_number: str, fields: Mapping[str, Any]) -> None:
        columns = [c for c in fields if c != "record_number"]
        query = sql.SQL("UPDATE {table} SET {assignments} WHERE {key} = %s").format(
            table=sql.Identifier(self.table),
            assignments=sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(column_for(c))) for c in columns
            ),
            key=sql.Identifier(column_for("record_number")),
        )
        with self._transaction("update") as cur:
            cur.execute(query, [fields[c] for c in columns] + [record_number])
            if cur.rowcount == 0:
                raise StoreError(f"update matched no row for record_number={record_number}")

    def insert(self, fields: Mapping[str, Any]) -> None:
        columns = list(fields)
        query = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({values})").format(
            table=sql.Identifier(self.table),
            cols=sql.SQL(", ").join(sql.Identifier(column_for(c)) for c in columns),
            values=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        with self._transaction("insert") as cur:
            cur.execute(query, [fields[c] for c in columns])


class InMemoryListingStore:
    """Dict-backed store used for dry runs and tests."""

    def __init__(self, rows: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self.rows: dict[str, dict[str, Any]] = {k: dict(v) for k, v in (rows or {}).items()}
        self._next_id = len(self.rows) + 1

    def find(self, record_number: str) -> dict[str, Any] | None:
        row = self.rows.get(record_number)
        return dict(row) if row is not None else None

    def update(self, record_number: str, fields: Mapping[str, Any]) -> None:
        if record_number not in self.rows:
            raise StoreError(f"update matched no row for record_number={record_number}")
        self.rows[record_number].update(fields)

    def insert(self, fields: Mapping[str, Any]) -> None:
        record_number = fields["record_number"]
        if record_number in self.rows:
            raise StoreError(f"duplicate key record_number={record_number}")
        self.rows[record_number] = {"id": self._next_id, **fields}
        self._next_id += 1


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Resolve the connection string.

    優先順位:
        1. DATABASE_URL / PGDSN (DSN 全体)
        2. config の database.dsn
        3. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
           (未設定分は config の database セクションで補完)
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def connect(db_cfg: DatabaseConfig) -> Iterator[PostgresListingStore]:
    """Open one connection for the run. A connection failure is raised as StoreError."""
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise StoreError(f"connection failed: {e}") from e
    conn.autocommit = False
    try:
        yield PostgresListingStore(conn, table=db_cfg.table)
    finally:
        conn.close()
