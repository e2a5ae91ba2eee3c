from __future__ import annotations

from dataclasses import dataclass
from datetime import date

"""ListingRow model for the property listing sync.

ListingRow is the typed form of one line of the property list spreadsheet
after header alias resolution and cell normalization (see
listing_sync/sheets/normalizer.py).
"""

__all__ = [
    "ListingRow",
]


@dataclass(frozen=True)
class ListingRow:
    """One normalized primary-sheet row.

    Attribute groups:
    - record_number: business key shared with the auxiliary sheet and the store
    - listing attributes: always overwritten in the store on every sync
    - status inputs: only consumed by the status rules, never stored as-is
    """
    record_number: str
    # 物件情報 (source-of-truth owned)
    raw_status: str = ""
    address: str = ""
    display_address: str = ""
    property_type: str = ""
    sales_price: float | None = None
    listing_price: float | None = None
    land_area: float | None = None
    building_area: float | None = None
    buyer_name: str = ""
    seller_name: str = ""
    status: str = ""
    google_map_url: str = ""
    current_status: str = ""
    delivery: str = ""
    # サイドバーステータス判定用
    report_date: date | None = None
    report_assignee: str = ""
    confirmed: str = ""
    unlisted_flag: str = ""
    single_listing_flag: str = ""
    registration_url: str = ""
    registration_exemption: str = ""
    purchase_offer: str = ""
    sales_assignee: str = ""

    def listing_fields(self) -> dict[str, object]:
        """Columns written to the store verbatim on every sync."""
        return {
            "record_number": self.record_number,
            "address": self.address,
            "display_address": self.display_address,
            "property_type": self.property_type,
            "sales_price": self.sales_price,
            "listing_price": self.listing_price,
            "land_area": self.land_area,
            "building_area": self.building_area,
            "buyer_name": self.buyer_name,
            "seller_name": self.seller_name,
            "raw_status": self.raw_status,
            "status": self.status,
            "google_map_url": self.google_map_url,
            "current_status": self.current_status,
            "delivery": self.delivery,
        }
