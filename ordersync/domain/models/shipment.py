"""
ShipStation shipment model.
"""

from dataclasses import dataclass, field
from typing import Any


def _extract_order_ids(items: list[dict] | None) -> list[str]:
    """Whatnot order ids from shipment item SKUs, first occurrence order, blanks skipped."""
    seen: dict[str, None] = {}
    for item in items or []:
        sku = (item or {}).get("sku")
        if sku is None:
            continue
        sku = str(sku).strip()
        if sku and sku not in seen:
            seen[sku] = None
    return list(seen)


@dataclass(frozen=True)
class Shipment:
    """
    A ShipStation shipment.

    Attributes:
        shipment_id: ShipStation shipment id (string form)
        tracking_number: Carrier tracking number
        carrier_code: ShipStation carrier code (``usps``, ``ups``, ...)
        create_date / ship_date: Timestamps as sent by ShipStation
        marketplace_order_ids: Whatnot order ids encoded in item SKUs
        voided: Whether the label was voided
    """

    shipment_id: str
    tracking_number: str | None
    carrier_code: str | None
    create_date: str | None = None
    ship_date: str | None = None
    order_id: str | None = None
    order_number: str | None = None
    voided: bool = False
    marketplace_order_ids: list[str] = field(default_factory=list)

    @property
    def is_trackable(self) -> bool:
        return not self.voided and bool(self.tracking_number)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Shipment":
        """Build a shipment from a ``GET /shipments`` entry."""
        order_id = data.get("orderId")
        return cls(
            shipment_id=str(data.get("shipmentId")),
            tracking_number=data.get("trackingNumber") or None,
            carrier_code=data.get("carrierCode"),
            create_date=data.get("createDate"),
            ship_date=data.get("shipDate"),
            order_id=str(order_id) if order_id is not None else None,
            order_number=data.get("orderNumber"),
            voided=bool(data.get("voided")),
            marketplace_order_ids=_extract_order_ids(data.get("shipmentItems")),
        )
