"""
Money value object for handling monetary amounts with currency.

Whatnot reports every amount as an integer number of cents; the
value object keeps the dollar amount as a two-place Decimal.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


@dataclass(frozen=True)
class Money:
    """
    Immutable value object representing a monetary amount with currency.

    Attributes:
        amount: The monetary amount in major units (dollars)
        currency: ISO currency code (e.g., "USD")

    Example:
        >>> shipping = Money.from_cents(550)
        >>> tax = Money.from_cents(125)
        >>> (shipping + tax).cents
        675
    """

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self) -> None:
        """Validate money object after initialization."""
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))

        object.__setattr__(self, "amount", self.amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

        if not self.currency or len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")

    def __add__(self, other: "Money") -> "Money":
        """Add two Money objects with the same currency."""
        if not isinstance(other, Money):
            raise TypeError(f"Cannot add Money with {type(other)}")

        if self.currency != other.currency:
            raise ValueError(f"Cannot add different currencies: {self.currency} and {other.currency}")

        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __str__(self) -> str:
        return f"{self.currency} {self.amount:.2f}"

    @property
    def cents(self) -> int:
        """Amount in minor units."""
        return int((self.amount * 100).to_integral_value(rounding=ROUND_HALF_UP))

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @classmethod
    def zero(cls, currency: str = "USD") -> "Money":
        """Create a zero Money object."""
        return cls(amount=Decimal("0"), currency=currency)

    @classmethod
    def from_cents(cls, cents: int | float | Decimal | None, currency: str | None = "USD") -> "Money":
        """Create Money from an amount in cents."""
        return cls(amount=Decimal(str(cents or 0)) / Decimal(100), currency=currency or "USD")

    @classmethod
    def from_graphql(cls, node: dict | None, default_currency: str = "USD") -> "Money":
        """Create Money from a Whatnot ``{amount, currencyCode}`` object."""
        node = node or {}
        return cls.from_cents(node.get("amount"), node.get("currencyCode") or default_currency)
