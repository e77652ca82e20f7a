"""Dobles de prueba: respuestas y sesiones aiohttp, reloj controlado y nodos GraphQL de órdenes."""

import json
from itertools import count
from typing import Any

from ordersync.domain.models import MarketplaceOrder


class FakeResponse:
    """Respuesta aiohttp mínima usable con ``async with``."""

    def __init__(self, status: int = 200, json_data: Any = None, headers: dict | None = None, text: str | None = None):
        self.status = status
        self._json = json_data
        self.headers = headers or {}
        self._text = text

    async def json(self, content_type=None):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json

    async def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self._json)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeSession:
    """Sesión que devuelve respuestas predefinidas en orden y registra cada llamada."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def _next(self, method: str, url: str, kwargs: dict) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self._next("POST", url, kwargs)

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        return self._next(method, url, kwargs)

    async def close(self):
        self.closed = True


class FakeClock:
    """Reloj monotónico controlado por los tests."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


_ids = count(1)


def make_order_node(
    order_id: str | None = None,
    created_at: str = "2024-03-15T23:10:00Z",
    username: str = "buyer1",
    status: str = "PROCESSING",
    reference: str | None = "live-1",
    items: list[dict] | None = None,
    cancelled_at: str | None = None,
    tracking: dict | None = None,
    total: int = 1500,
    shipping: int = 500,
    tax: int = 100,
    items_has_next_page: bool = False,
) -> dict[str, Any]:
    """Nodo GraphQL de una orden de Whatnot."""
    order_id = order_id or f"order-{next(_ids)}"
    if items is None:
        items = [make_item_node(f"{order_id}-item")]

    return {
        "id": order_id,
        "createdAt": created_at,
        "status": status,
        "cancelledAt": cancelled_at,
        "customer": {"id": f"user-{username}", "username": username},
        "shippingAddress": {
            "fullName": f"{username} Buyer",
            "line1": "1 Main St",
            "line2": None,
            "city": "Springfield",
            "state": "IL",
            "postalCode": "62701",
            "countryCode": "US",
            "phoneNumber": "555-0100",
        },
        "subtotal": {"amount": total - shipping - tax, "currencyCode": "USD"},
        "shippingPrice": {"amount": shipping, "currencyCode": "USD"},
        "taxation": {"amount": tax, "currencyCode": "USD"},
        "total": {"amount": total, "currencyCode": "USD"},
        "salesChannel": {"type": "LIVESTREAM", "reference": reference} if reference else None,
        "trackingInfo": tracking,
        "items": {
            "edges": [{"node": item} for item in items],
            "pageInfo": {"hasNextPage": items_has_next_page, "endCursor": "items-cursor" if items_has_next_page else None},
        },
    }


def make_item_node(
    item_id: str = "item-1",
    sku: str | None = "SKU-1",
    quantity: int = 1,
    price: int = 1000,
    is_pickup: bool = False,
    title: str | None = "Card",
) -> dict[str, Any]:
    return {
        "id": item_id,
        "quantity": quantity,
        "price": {"amount": price, "currencyCode": "USD"},
        "isPickup": is_pickup,
        "variant": {"sku": sku},
        "product": {"id": f"prod-{item_id}", "title": title},
    }


def make_order(**kwargs) -> MarketplaceOrder:
    return MarketplaceOrder.from_graphql(make_order_node(**kwargs))
