from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Protocol

from listing_sync.models.listing_row import ListingRow
from listing_sync.services.auxiliary_cache import SCHEDULED_DATE_COLUMN
from listing_sync.sheets.normalizer import to_date

"""Sidebar status derivation.

The sidebar status is a single triage label per listing. It is computed from
an ordered list of rules; the first rule whose label_for() returns a string
wins and the remaining rules are not consulted. A listing that matches no rule
gets "".

Rules never raise on missing input: an absent field simply makes that rule
return None so evaluation falls through to the next one.

Date thresholds are calendar days. "today" and "yesterday" are distinct and
used by different rules (本日公開予定 vs SUUMO/レインズ登録).
"""

__all__ = [
    "StatusContext",
    "StatusRule",
    "STATUS_RULES",
    "ASSIGNEE_LABELS",
    "derive_status",
]


class AuxiliaryLookupLike(Protocol):
    def lookup(self, record_number: str, column: str) -> object: ...


# atbb ステータス値
GENERAL_OPEN = "一般・公開中"
EXCLUSIVE_OPEN = "専任・公開中"
PRE_PUBLICATION_MARKER = "公開前"
PRE_PUBLICATION_STATUSES = frozenset({"一般・公開前", "専任・公開前"})
UNLISTED_EMAIL_ONLY = "非公開（配信メールのみ）"

# 買付 × atbb ステータス の組み合わせ
OFFER_WITHOUT_VIEWING_PAIRS = frozenset({
    ("専任片手", EXCLUSIVE_OPEN),
    ("一般他決", GENERAL_OPEN),
    ("専任両手", EXCLUSIVE_OPEN),
    ("一般両手", GENERAL_OPEN),
    ("一般片手", GENERAL_OPEN),
})

# 担当名（営業） -> 専任・公開中 のラベル
ASSIGNEE_LABELS: dict[str, str] = {
    "山本": "Y専任公開中",
    "生野": "生・専任公開中",
    "久": "久・専任公開中",
    "裏": "U専任公開中",
    "林": "林・専任公開中",
    "国広": "K専任公開中",
    "木村": "R専任公開中",
    "角井": "I専任公開中",
}
EXCLUSIVE_OPEN_FALLBACK = EXCLUSIVE_OPEN


@dataclass(frozen=True)
class StatusContext:
    row: ListingRow
    auxiliary: AuxiliaryLookupLike
    today: date

    @property
    def yesterday(self) -> date:
        return self.today - timedelta(days=1)

    def scheduled_date(self) -> date | None:
        return to_date(self.auxiliary.lookup(self.row.record_number, SCHEDULED_DATE_COLUMN))


@dataclass(frozen=True)
class StatusRule:
    name: str
    label_for: Callable[[StatusContext], str | None]


def _unreported(ctx: StatusContext) -> str | None:
    report_date = ctx.row.report_date
    if report_date is None or report_date > ctx.today:
        return None
    if ctx.row.report_assignee:
        return f"未報告 {ctx.row.report_assignee}"
    return "未報告"


def _incomplete(ctx: StatusContext) -> str | None:
    return "未完了" if ctx.row.confirmed == "未" else None


def _scheduled_unlisted(ctx: StatusContext) -> str | None:
    return "非公開予定（確認後）" if ctx.row.unlisted_flag == "非公開予定" else None


def _open_listing_unconfirmed(ctx: StatusContext) -> str | None:
    return "一般媒介の掲載確認未" if ctx.row.single_listing_flag == "未確認" else None


def _publishing_today(ctx: StatusContext) -> str | None:
    if PRE_PUBLICATION_MARKER not in ctx.row.raw_status:
        return None
    scheduled = ctx.scheduled_date()
    if scheduled is not None and scheduled <= ctx.today:
        return "本日公開予定"
    return None


def _registration_needed(ctx: StatusContext) -> str | None:
    raw_status = ctx.row.raw_status
    if raw_status not in (GENERAL_OPEN, EXCLUSIVE_OPEN):
        return None
    scheduled = ctx.scheduled_date()
    if scheduled is None or scheduled > ctx.yesterday:
        return None
    if ctx.row.registration_url or ctx.row.registration_exemption == "S不要":
        return None
    if raw_status == GENERAL_OPEN:
        return "SUUMO URL　要登録"
    return "レインズ登録＋SUUMO登録"


def _offer_without_viewing(ctx: StatusContext) -> str | None:
    if (ctx.row.purchase_offer, ctx.row.raw_status) in OFFER_WITHOUT_VIEWING_PAIRS:
        return "買付申込み（内覧なし）２"
    return None


def _pre_publication(ctx: StatusContext) -> str | None:
    return "公開前情報" if ctx.row.raw_status in PRE_PUBLICATION_STATUSES else None


def _unlisted_email_only(ctx: StatusContext) -> str | None:
    return UNLISTED_EMAIL_ONLY if ctx.row.raw_status == UNLISTED_EMAIL_ONLY else None


def _general_open(ctx: StatusContext) -> str | None:
    return "一般公開中物件" if ctx.row.raw_status == GENERAL_OPEN else None


def _exclusive_open(ctx: StatusContext) -> str | None:
    if ctx.row.raw_status != EXCLUSIVE_OPEN:
        return None
    return ASSIGNEE_LABELS.get(ctx.row.sales_assignee, EXCLUSIVE_OPEN_FALLBACK)


# 評価順 = 優先順。並べ替えるとラベルが変わる
STATUS_RULES: tuple[StatusRule, ...] = (
    StatusRule("unreported", _unreported),
    StatusRule("incomplete", _incomplete),
    StatusRule("scheduled_unlisted", _scheduled_unlisted),
    StatusRule("open_listing_unconfirmed", _open_listing_unconfirmed),
    StatusRule("publishing_today", _publishing_today),
    StatusRule("registration_needed", _registration_needed),
    StatusRule("offer_without_viewing", _offer_without_viewing),
    StatusRule("pre_publication", _pre_publication),
    StatusRule("unlisted_email_only", _unlisted_email_only),
    StatusRule("general_open", _general_open),
    StatusRule("exclusive_open", _exclusive_open),
)


def derive_status(
    row: ListingRow,
    auxiliary: AuxiliaryLookupLike,
    today: date,
    rules: tuple[StatusRule, ...] = STATUS_RULES,
) -> str:
    """Return the label of the first matching rule, or "" when none match."""
    ctx = StatusContext(row=row, auxiliary=auxiliary, today=today)
    for rule in rules:
        label = rule.label_for(ctx)
        if label is not None:
            return label
    return ""
