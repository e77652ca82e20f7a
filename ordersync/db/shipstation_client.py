"""
ShipStation REST client.

Every HTTP attempt goes through a client-side token bucket (about 40
requests per minute). HTTP 429 responses are retried after the
server-provided Retry-After delay up to SHIPSTATION_MAX_RETRIES times;
HTTP 401 fails immediately.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import aiohttp
import pytz
from aiohttp import BasicAuth, ClientTimeout

from ordersync.core.config import Settings, get_settings
from ordersync.core.logging_config import log_api_call, log_sync_operation
from ordersync.domain.models import MarketplaceOrder, Shipment
from ordersync.services.orders.consolidator import OrderConsolidator
from ordersync.services.orders.converters import ShipStationOrderMapper
from ordersync.services.state_store import JsonStateBackend, SyncTimeStore
from ordersync.utils.error_handler import (
    AppException,
    AuthenticationException,
    ConfigurationException,
    RateLimitException,
    ShipStationAPIException,
    error_message,
)
from ordersync.utils.rate_limiter import AsyncRateLimiter
from ordersync.utils.retry_handler import RetryHandler, create_shipstation_retry_handler

logger = logging.getLogger(__name__)

DateLike = Union[str, date, None]


@dataclass(frozen=True)
class CreationProgress:
    """Cumulative progress of ``create_orders``; ``total`` is the number of groups."""

    created: int
    failed: int
    total: int

    @property
    def attempted(self) -> int:
        return self.created + self.failed


ProgressCallback = Callable[[CreationProgress], Union[None, Awaitable[None]]]


@dataclass
class CreateOrdersResult:
    successful: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    grouped_count: int = 0


@dataclass
class ShipmentListing:
    shipments: List[Shipment] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.shipments)


def _parse_retry_after(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return default


def _as_date_string(value: DateLike) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


async def _notify(callback: Optional[ProgressCallback], progress: CreationProgress) -> None:
    if callback is None:
        return
    result = callback(progress)
    if inspect.isawaitable(result):
        await result


class ShipStationClient:
    """
    Client for the ShipStation API.

    Creates consolidated orders one group at a time and lists shipped
    packages with tracking numbers.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limiter: Optional[AsyncRateLimiter] = None,
        retry_handler: Optional[RetryHandler] = None,
        sync_time_store: Optional[SyncTimeStore] = None,
        consolidator: Optional[OrderConsolidator] = None,
        mapper: Optional[ShipStationOrderMapper] = None,
    ):
        """
        Initialize the client.

        Raises:
            ConfigurationException: If API credentials are missing
        """
        self.settings = settings or get_settings()
        self.api_key = api_key or self.settings.SHIPSTATION_API_KEY
        self.api_secret = api_secret or self.settings.SHIPSTATION_API_SECRET

        if not self.api_key or not self.api_secret:
            raise ConfigurationException(
                "ShipStation API credentials are required",
                setting="SHIPSTATION_API_KEY,SHIPSTATION_API_SECRET",
            )

        self.base_url = self.settings.SHIPSTATION_BASE_URL.rstrip("/")
        self._auth = BasicAuth(self.api_key, self.api_secret)

        self.rate_limiter = rate_limiter or AsyncRateLimiter.for_shipstation(self.settings)
        self.retry_handler = retry_handler or create_shipstation_retry_handler(self.settings)
        self.sync_time_store = sync_time_store or SyncTimeStore(
            JsonStateBackend.from_settings(self.settings),
            lookback_days=self.settings.TRACKING_DEFAULT_LOOKBACK_DAYS,
        )
        self.consolidator = consolidator or OrderConsolidator(self.settings.STREAM_TIMEZONE)
        self.mapper = mapper or ShipStationOrderMapper()

        self.session = session
        self._owns_session = session is None

    async def initialize(self):
        """Create the HTTP session if none was provided."""
        if self.session is None:
            timeout = ClientTimeout(total=self.settings.SHIPSTATION_REQUEST_TIMEOUT, connect=10)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": f"{self.settings.APP_NAME}/{self.settings.APP_VERSION}",
                },
            )
            self._owns_session = True
            logger.debug("Initialized ShipStation client")

    async def close(self):
        """Close the HTTP session if the client created it."""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # === TRANSPORT ===

    async def _request_once(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        One rate-limited HTTP attempt.

        Raises:
            AuthenticationException: On HTTP 401
            RateLimitException: On HTTP 429
            ShipStationAPIException: On any other error status
        """
        if self.session is None:
            await self.initialize()

        await self.rate_limiter.acquire()

        url = f"{self.base_url}{path}"
        start = time.monotonic()

        async with self.session.request(method, url, params=params, json=json, auth=self._auth) as response:
            status = response.status
            log_api_call(method, url, status, time.monotonic() - start)

            if status == 401:
                raise AuthenticationException(
                    "Invalid ShipStation API credentials", service="shipstation", endpoint=path
                )

            if status == 429:
                retry_after = _parse_retry_after(
                    response.headers.get("Retry-After"), float(self.settings.SHIPSTATION_DEFAULT_RETRY_AFTER)
                )
                raise RateLimitException(
                    f"Rate limit exceeded. Retry after {retry_after:g} seconds",
                    retry_after=retry_after,
                    endpoint=path,
                )

            if status >= 400:
                body = await response.text()
                raise ShipStationAPIException(
                    f"HTTP {status} on {method} {path}: {body[:500]}",
                    status_code=status,
                    endpoint=path,
                    response_body=body,
                )

            if status == 204:
                return None

            return await response.json(content_type=None)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """HTTP request with the 429 retry policy applied."""
        try:
            return await self.retry_handler.execute(
                self._request_once, method, path, context={"endpoint": path}, **kwargs
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ShipStationAPIException(
                f"Network error on {method} {path}: {str(e) or type(e).__name__}", endpoint=path
            ) from e

    # === ORDERS ===

    async def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update one order (ShipStation upserts by ``orderKey``).

        Returns:
            Dict: ShipStation order as returned by the API
        """
        response = await self._request("POST", "/orders/createorder", json=payload)
        return response or {}

    async def create_orders(
        self,
        orders: Sequence[MarketplaceOrder],
        store_id: Union[str, int, None],
        on_progress: Optional[ProgressCallback] = None,
    ) -> CreateOrdersResult:
        """
        Consolidate orders and create one ShipStation order per group.

        Groups are created sequentially. Progress is reported once with
        zero counts and then after every group, success or failure, with
        the number of groups as the denominator.

        Args:
            orders: Valid Whatnot orders
            store_id: ShipStation store receiving the orders
            on_progress: Callback (sync or async) receiving CreationProgress

        Returns:
            CreateOrdersResult: Successful and failed groups

        Raises:
            ConfigurationException: If store_id is missing
            AuthenticationException: If ShipStation rejects the credentials
        """
        if not store_id:
            raise ConfigurationException("storeId is required", setting="shipstationStoreId")

        groups = self.consolidator.group(orders)
        result = CreateOrdersResult(grouped_count=len(groups))
        logger.info(f"Grouped {len(orders)} orders into {len(groups)} combined orders")

        await _notify(on_progress, CreationProgress(created=0, failed=0, total=len(groups)))

        for group in groups:
            try:
                shipping_order = self.mapper.map(group, store_id)
                response = await self.create_order(shipping_order.to_dict())

                result.successful.append(
                    {
                        "whatnot_ids": group.order_ids,
                        "shipstation_id": response.get("orderId"),
                        "order_number": response.get("orderNumber", shipping_order.order_number),
                        "session_id": group.session_id,
                    }
                )
                log_sync_operation(
                    "create_order", "shipstation", order_key=shipping_order.order_key, whatnot_ids=group.order_ids
                )
                logger.info(f"Created order {shipping_order.order_number} for stream {group.session_id}")

            except AuthenticationException:
                raise
            except (AppException, ValueError) as e:
                logger.error(
                    f"ShipStation createOrder failed for stream {group.session_id} "
                    f"(orders {', '.join(group.order_ids)}): {error_message(e)}"
                )
                result.failed.append(
                    {
                        "whatnot_ids": group.order_ids,
                        "session_id": group.session_id,
                        "error": error_message(e),
                    }
                )

            await _notify(
                on_progress,
                CreationProgress(created=len(result.successful), failed=len(result.failed), total=len(groups)),
            )

        log_sync_operation(
            "create_orders",
            "shipstation",
            groups_created=len(result.successful),
            groups_failed=len(result.failed),
            retry_metrics=self.retry_handler.get_metrics(),
        )
        return result

    # === SHIPMENTS ===

    def _today(self) -> date:
        return datetime.now(pytz.timezone(self.settings.SHIPSTATION_TIMEZONE)).date()

    async def list_shipped_with_tracking(
        self,
        store_id: Union[str, int, None],
        start_date: DateLike = None,
        end_date: DateLike = None,
    ) -> ShipmentListing:
        """
        List shipments created in a date range that carry a tracking number.

        Voided shipments, shipments without a tracking number and
        shipments without Whatnot order ids in their item SKUs are dropped.

        Args:
            store_id: ShipStation store (None lists across all stores)
            start_date: First day (``YYYY-MM-DD``), defaults to SHIPMENT_DEFAULT_WINDOW_DAYS ago
            end_date: Last day (``YYYY-MM-DD``), defaults to today

        Returns:
            ShipmentListing: Trackable shipments in API order
        """
        today = self._today()
        start = _as_date_string(start_date) or (today - timedelta(days=self.settings.SHIPMENT_DEFAULT_WINDOW_DAYS)).isoformat()
        end = _as_date_string(end_date) or today.isoformat()

        params: Dict[str, str] = {
            "createDateStart": f"{start} 00:00:00",
            "createDateEnd": f"{end} 23:59:59",
            "includeShipmentItems": "true",
            "pageSize": str(self.settings.SHIPSTATION_PAGE_SIZE),
        }
        if store_id is not None:
            params["storeId"] = str(store_id)

        listing = ShipmentListing()
        page = 1
        has_more_pages = True

        logger.info(f"Fetching shipments for store {store_id if store_id is not None else 'all'} from {start} to {end}")

        while has_more_pages:
            data = await self._request("GET", "/shipments", params={**params, "page": str(page)}) or {}
            shipments = data.get("shipments") or []

            if not shipments:
                break

            pages = int(data.get("pages") or 1)
            logger.debug(f"Processing shipments page {page}/{pages} with {len(shipments)} shipments")

            for raw in shipments:
                shipment = Shipment.from_api(raw)
                if not shipment.is_trackable or not shipment.marketplace_order_ids:
                    continue
                listing.shipments.append(shipment)

            has_more_pages = page < pages
            page += 1

        logger.info(f"Found {listing.total} shipments with Whatnot order IDs")
        return listing

    # === SYNC TIME ===

    async def get_sync_time(self, store_id: Union[str, int, None]) -> str:
        return await self.sync_time_store.load_sync_time(store_id)

    async def save_sync_time(self, store_id: Union[str, int, None], last_sync_time: str) -> None:
        await self.sync_time_store.save_sync_time(store_id, last_sync_time)
