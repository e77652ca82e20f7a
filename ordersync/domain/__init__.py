"""
Domain layer for the Whatnot-ShipStation integration.

This layer contains business entities and value objects shared by the
clients and the synchronization services.
"""
