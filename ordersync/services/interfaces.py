"""
Interfaces/Protocols for the sync orchestrators (Dependency Inversion Principle).

The orchestrators only depend on these contracts, so tests can drive
them with in-memory fakes instead of HTTP clients.
"""

from typing import Any, Callable, Protocol, Sequence

from ordersync.domain.models import MarketplaceOrder


class IMarketplaceClient(Protocol):
    """Protocol for the Whatnot client of one account."""

    async def __aenter__(self) -> "IMarketplaceClient": ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> Any: ...

    async def fetch_orders(self) -> list[MarketplaceOrder]:
        """Fetch new orders since the stored cursor."""
        ...

    async def update_orders_tracking(
        self, order_id_groups: Sequence[Sequence[str]], tracking_code: str, courier: str
    ) -> dict[str, list[dict[str, Any]]]:
        """Attach a tracking code to each group of orders, collecting successful and failed groups."""
        ...


class IFulfillmentClient(Protocol):
    """Protocol for the ShipStation client."""

    async def create_orders(self, orders: Sequence[MarketplaceOrder], store_id: Any, on_progress=None) -> Any:
        """Consolidate and create orders, reporting progress per group."""
        ...

    async def list_shipped_with_tracking(self, store_id: Any, start_date=None, end_date=None) -> Any:
        """List trackable shipments."""
        ...

    async def get_sync_time(self, store_id: Any) -> str:
        """Tracking watermark of a store."""
        ...

    async def save_sync_time(self, store_id: Any, last_sync_time: str) -> None:
        """Advance the tracking watermark of a store."""
        ...


MarketplaceClientFactory = Callable[[Any], IMarketplaceClient]
