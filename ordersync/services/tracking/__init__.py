"""
Tracking services: ShipStation shipments → Whatnot tracking codes.
"""
