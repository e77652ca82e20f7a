"""
External API clients (Whatnot GraphQL, ShipStation REST).
"""
