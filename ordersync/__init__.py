"""
Whatnot ↔ ShipStation synchronization.

Pulls new Whatnot orders into ShipStation as consolidated shipping orders and
pushes ShipStation tracking numbers back to the Whatnot orders they ship.
"""

__version__ = "1.0.0"
