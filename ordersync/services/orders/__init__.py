"""
Order services package for Whatnot to ShipStation synchronization.

This package contains the consolidation, validation, mapping and
orchestration of the order-creation pipeline.
"""
