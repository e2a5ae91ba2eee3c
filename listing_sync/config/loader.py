from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from listing_sync.models.config_models import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_TABLE,
    DEFAULT_TIMEZONE,
    DatabaseConfig,
    SourceConfig,
    StorageSearchConfig,
    SyncConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config/sync.yml
- Validate against the packaged JSON schema (sync_schema.json)
- Apply environment overrides for spreadsheet ids / sheet names / credentials
- Apply defaults (timezone=Asia/Tokyo, batch_size=100, table=property_listings)

Database connection env vars (DATABASE_URL, PG*) are resolved later, at connect
time, by listing_sync.db.listing_store.resolve_dsn.
"""

SCHEMA_PATH = Path(__file__).with_name("sync_schema.json")
DEFAULT_CONFIG_PATH = Path("config/sync.yml")

# 環境変数 -> (セクション, キー)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "PROPERTY_LISTING_SPREADSHEET_ID": ("primary_source", "spreadsheet_id"),
    "PROPERTY_LISTING_SHEET_NAME": ("primary_source", "sheet_name"),
    "GYOMU_LIST_SPREADSHEET_ID": ("auxiliary_source", "spreadsheet_id"),
    "GYOMU_LIST_SHEET_NAME": ("auxiliary_source", "sheet_name"),
}
CREDENTIALS_ENV = "GOOGLE_SERVICE_ACCOUNT_KEY_PATH"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            config data fails schema validation (missing required keys, wrong
            types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _apply_env_overrides(data: dict[str, Any]) -> None:
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data.setdefault(section, {})[key] = value
    creds = os.getenv(CREDENTIALS_ENV)
    if creds:
        data["credentials_file"] = creds


def _build_source(name: str, raw: dict[str, Any]) -> SourceConfig:
    source = SourceConfig(
        type=raw["type"],
        sheet_name=raw["sheet_name"],
        spreadsheet_id=raw.get("spreadsheet_id"),
        path=raw.get("path"),
    )
    if source.type == "google_sheets" and not source.spreadsheet_id:
        raise ConfigError(f"{name}: spreadsheet_id is required for google_sheets sources")
    if source.type == "excel" and not source.path:
        raise ConfigError(f"{name}: path is required for excel sources")
    return source


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> SyncConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _apply_env_overrides(data)
    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
        table=db_raw.get("table", DEFAULT_TABLE),
    )
    tz = data.get("timezone", DEFAULT_TIMEZONE)
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown timezone: {tz}") from e
    search_raw = data.get("storage_search") or {}
    return SyncConfig(
        primary_source=_build_source("primary_source", data["primary_source"]),
        auxiliary_source=_build_source("auxiliary_source", data["auxiliary_source"]),
        database=db,
        credentials_file=data.get("credentials_file", "./google-service-account.json"),
        timezone=tz,
        batch_size=data.get("batch_size", DEFAULT_BATCH_SIZE),
        start_index=data.get("start_index", 0),
        storage_search=StorageSearchConfig(
            enabled=search_raw.get("enabled", True),
            parent_folder_id=search_raw.get("parent_folder_id"),
        ),
    )
