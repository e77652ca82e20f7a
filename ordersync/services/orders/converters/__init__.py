"""
Converter services for transforming Whatnot order groups to ShipStation format.
"""

from .shipstation_mapper import ShipStationOrderMapper

__all__ = ["ShipStationOrderMapper"]
