"""
Validator services for deciding which Whatnot orders can be shipped.
"""

from .order_validator import InvalidOrder, OrderValidator, ValidationResult

__all__ = ["InvalidOrder", "OrderValidator", "ValidationResult"]
