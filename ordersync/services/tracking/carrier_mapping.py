"""
ShipStation carrier code → Whatnot courier.
"""

from typing import Optional

CARRIER_TO_COURIER = {
    "USPS": "usps",
    "UPS": "ups",
    "FEDEX": "fedex",
    "DHL": "dhl",
}


def map_carrier_to_courier(carrier_code: Optional[str], default: str = "usps") -> str:
    """
    Translate a ShipStation carrier code to the Whatnot courier vocabulary.

    Unknown or missing codes fall back to ``default`` (USPS ships most
    Whatnot packages).
    """
    if not carrier_code:
        return default
    return CARRIER_TO_COURIER.get(carrier_code.strip().upper(), default)
