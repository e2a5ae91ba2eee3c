#!/usr/bin/env python3
"""Sample workbook generation for local dry runs.

Generates two synthetic .xlsx workbooks shaped like the live spreadsheets:
- property list (sheet 物件): one row per 物件番号 with the columns the
  normalizer reads, a mix of raw statuses, prices, areas and 報告日 values
- 業務依頼 (sheet 業務依頼): 公開予定日 / スプシURL / 格納先URL for a subset
  of the same 物件番号

Point config/sync.yml at the generated files (type: excel) and run
``python -m listing_sync.cli --dry-run`` to exercise the whole sync offline.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

RAW_STATUSES = [
    "一般・公開中",
    "専任・公開中",
    "一般・公開前",
    "専任・公開前",
    "非公開（配信メールのみ）",
    "成約済み",
]
PROPERTY_TYPES = ["土地", "戸建", "マンション", "収益物件"]
ASSIGNEES = ["山本", "生野", "久", "裏", "林", "国広", "木村", "角井", "佐藤"]
CITIES = ["大分市", "別府市", "由布市", "臼杵市"]


def generate_primary(rows: int, seed: int = 42, today: pd.Timestamp | None = None) -> pd.DataFrame:
    """Generate the property list sheet.

    Args:
        rows: Number of data rows
        seed: Random seed for reproducible data
        today: Reference date for 報告日 (default: current date)

    Returns:
        DataFrame whose columns are the property list headers
    """
    rng = np.random.default_rng(seed)
    today = (today or pd.Timestamp.today()).normalize()

    data: dict[str, list[Any]] = {}
    data["物件番号"] = [f"AA{10000 + i}" for i in range(rows)]
    data["atbb成約済み/非公開"] = rng.choice(RAW_STATUSES, rows).tolist()
    data["所在地"] = [f"{rng.choice(CITIES)}{rng.integers(1, 30)}丁目{rng.integers(1, 20)}-{rng.integers(1, 9)}" for _ in range(rows)]
    data["種別"] = rng.choice(PROPERTY_TYPES, rows).tolist()
    data["売買価格"] = (rng.integers(300, 9000, rows) * 10_000).tolist()
    data["売出価格"] = (rng.integers(300, 9000, rows) * 10_000).tolist()
    data["土地面積"] = np.round(rng.uniform(50, 500, rows), 2).tolist()
    data["建物面積"] = np.round(rng.uniform(30, 250, rows), 2).tolist()
    data["担当名（営業）"] = rng.choice(ASSIGNEES, rows).tolist()

    # 報告日: 約 2 割が期限到来 (過去〜今日)、残りは未来日か空
    report_dates: list[Any] = []
    for _ in range(rows):
        roll = rng.random()
        if roll < 0.2:
            report_dates.append(today - pd.Timedelta(days=int(rng.integers(0, 10))))
        elif roll < 0.5:
            report_dates.append(today + pd.Timedelta(days=int(rng.integers(1, 30))))
        else:
            report_dates.append(None)
    data["報告日"] = report_dates
    data["報告担当"] = rng.choice(ASSIGNEES, rows).tolist()
    data["確認"] = rng.choice(["済", "未", ""], rows, p=[0.8, 0.1, 0.1]).tolist()
    data["Suumo URL"] = ["" if rng.random() < 0.6 else f"https://suumo.jp/jj/bukken/{i}" for i in range(rows)]
    data["買付"] = rng.choice(["", "専任片手", "一般片手"], rows, p=[0.9, 0.05, 0.05]).tolist()

    return pd.DataFrame(data)


def generate_auxiliary(primary: pd.DataFrame, seed: int = 42, coverage: float = 0.6) -> pd.DataFrame:
    """Generate the 業務依頼 sheet for a random subset of the property list."""
    rng = np.random.default_rng(seed + 1)
    today = pd.Timestamp.today().normalize()
    mask = rng.random(len(primary)) < coverage
    numbers = primary.loc[mask, "物件番号"].tolist()

    return pd.DataFrame(
        {
            "物件番号": numbers,
            "公開予定日": [today + pd.Timedelta(days=int(rng.integers(-5, 5))) for _ in numbers],
            "スプシURL": [f"https://docs.google.com/spreadsheets/d/sample-{n}" for n in numbers],
            "格納先URL": [
                f"https://drive.google.com/drive/folders/sample-{n}" if rng.random() < 0.5 else ""
                for n in numbers
            ],
        }
    )


def write_workbook(df: pd.DataFrame, output_path: Path, sheet_name: str) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
    print(f"Created workbook: {output_path} ({sheet_name}, {len(df)} rows)")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate sample property list / 業務依頼 workbooks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s data/
  %(prog)s data/ --rows 500 --seed 7
        """,
    )
    parser.add_argument("output_dir", type=Path, help="Directory for the generated workbooks")
    parser.add_argument("--rows", type=int, default=250, help="Property list rows (default: 250)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument(
        "--coverage",
        type=float,
        default=0.6,
        help="Share of properties present in the 業務依頼 sheet (default: 0.6)",
    )
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0.0 <= args.coverage <= 1.0:
        print("Error: --coverage must be between 0 and 1", file=sys.stderr)
        return 1

    try:
        primary = generate_primary(args.rows, args.seed)
        auxiliary = generate_auxiliary(primary, args.seed, args.coverage)
        write_workbook(primary, args.output_dir / "property_list.xlsx", "物件")
        write_workbook(auxiliary, args.output_dir / "gyomu_list.xlsx", "業務依頼")
    except OSError as e:
        print(f"\nError generating workbooks: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
