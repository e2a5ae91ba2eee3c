from __future__ import annotations

import math
import numbers
import re
import warnings
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

from listing_sync.models.listing_row import ListingRow

"""Row normalizer for the property list spreadsheet.

Turns one header-keyed row (as returned by a TabularSource) into a ListingRow.
Every cell goes through one of three coercions:

- text:   str() + strip, first non-empty alias wins
- number: thousands separators removed, float(); empty/unparseable -> None
- date:   spreadsheet day-serial (epoch 1899-12-30) or a date string -> date

None of these raise: a cell that cannot be read is treated as empty.
"""

__all__ = [
    "RECORD_NUMBER_COLUMN",
    "COLUMN_ALIASES",
    "normalize_row",
    "record_number_of",
    "to_text",
    "to_number",
    "to_date",
]

RECORD_NUMBER_COLUMN = "物件番号"

SERIAL_EPOCH = date(1899, 12, 30)
# 2025年1月21日 (年月日表記)
_JAPANESE_DATE = re.compile(r"(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日")

# field -> header candidates (優先順)
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "record_number": (RECORD_NUMBER_COLUMN,),
    # 互換用: シートのヘッダ名が過去に4回変わっている。新しい別名は追加しないこと
    "raw_status": ("atbb成約済み/非公開", "atbb_status", "ATBB_status", "ステータス"),
    "address": ("所在地",),
    "display_address": ("住居表示（ATBB登録住所）",),
    "property_type": ("種別",),
    "sales_price": ("売買価格",),
    "listing_price": ("売出価格",),
    "land_area": ("土地面積",),
    "building_area": ("建物面積",),
    "buyer_name": ("名前（買主）",),
    "seller_name": ("名前(売主）",),
    "status": ("状況",),
    "google_map_url": ("GoogleMap",),
    "current_status": ("●現況",),
    "delivery": ("引渡し",),
    "report_date": ("報告日",),
    "report_assignee": ("報告担当_override", "報告担当"),
    "confirmed": ("確認",),
    "unlisted_flag": ("一般媒介非公開（仮）",),
    "single_listing_flag": ("１社掲載",),
    "registration_url": ("Suumo URL",),
    "registration_exemption": ("Suumo登録",),
    "purchase_offer": ("買付",),
    "sales_assignee": ("担当名（営業）",),
}

NUMBER_FIELDS = frozenset({"sales_price", "listing_price", "land_area", "building_area"})
DATE_FIELDS = frozenset({"report_date"})


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and value.strip() == ""


def to_text(value: Any) -> str:
    """Coerce a cell to trimmed text. Integral floats lose their '.0'."""
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def to_number(value: Any) -> float | None:
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        number = float(value)
    else:
        cleaned = str(value).strip().replace(",", "").replace("，", "")
        try:
            number = float(cleaned)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _from_serial(serial: float) -> date | None:
    try:
        return SERIAL_EPOCH + timedelta(days=int(serial))
    except (OverflowError, ValueError):
        return None


def to_date(value: Any) -> date | None:
    """Normalize a serial number, datetime or date string to a calendar date.

    Time of day is dropped, so 45678 and "2025-01-21 18:30" compare equal.
    """
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, datetime):  # pd.Timestamp も datetime のサブクラス
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, numbers.Real):
        return _from_serial(value)

    text = str(value).strip()
    try:
        return _from_serial(float(text))
    except ValueError:
        pass
    m = _JAPANESE_DATE.fullmatch(text)
    if m:
        try:
            return date(*(int(g) for g in m.groups()))
        except ValueError:
            return None
    # 書式推定に失敗した文字列ごとに出る UserWarning は抑止 (行ごとに dateutil で解釈)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        parsed = pd.to_datetime(text, errors="coerce", format="mixed")
    if pd.isna(parsed):
        return None
    return parsed.date()


def _first_present(row: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for header in aliases:
        value = row.get(header)
        if not _is_blank(value):
            return value
    return None


def record_number_of(row: Mapping[str, Any]) -> str:
    return to_text(row.get(RECORD_NUMBER_COLUMN))


def normalize_row(row: Mapping[str, Any]) -> ListingRow:
    values: dict[str, Any] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        raw = _first_present(row, aliases)
        if field_name in NUMBER_FIELDS:
            values[field_name] = to_number(raw)
        elif field_name in DATE_FIELDS:
            values[field_name] = to_date(raw)
        else:
            values[field_name] = to_text(raw)
    return ListingRow(**values)
