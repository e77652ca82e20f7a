"""
Whatnot seller GraphQL client.

Reads new orders with cursor-driven pagination (resuming from the
stored cursor of the account), reads all line items of an order and
attaches tracking codes to orders.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import aiohttp
from aiohttp import ClientTimeout

from ordersync.core.config import Settings, get_settings
from ordersync.core.logging_config import log_api_call, log_sync_operation
from ordersync.db.queries import ADD_TRACKING_CODE_MUTATION, ORDER_ITEMS_QUERY, ORDERS_QUERY
from ordersync.domain.models import LineItem, MarketplaceOrder
from ordersync.services.state_store import CursorStore
from ordersync.utils.error_handler import (
    AuthenticationException,
    ConfigurationException,
    TrackingAlreadyExistsException,
    WhatnotAPIException,
    error_message,
    is_already_tracked_message,
)
from ordersync.utils.retry_handler import RetryHandler, create_whatnot_retry_handler

logger = logging.getLogger(__name__)


def _format_user_errors(user_errors: Sequence[Dict[str, Any]]) -> str:
    messages = []
    for error in user_errors:
        field = error.get("field")
        if isinstance(field, (list, tuple)):
            field_str = ".".join(str(part) for part in field) if field else "general"
        else:
            field_str = str(field) if field else "general"
        messages.append(f"{field_str}: {error.get('message', 'Unknown error')}")
    return "; ".join(messages)


class WhatnotClient:
    """
    Client for one Whatnot seller account.

    Orders are requested page by page sorted by creation time. The end
    cursor of every page is persisted before the next page is requested,
    so an interrupted fetch resumes where it stopped.
    """

    def __init__(
        self,
        account_name: str,
        token: Optional[str],
        cursor_store: CursorStore,
        start_at: Optional[str] = None,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        retry_handler: Optional[RetryHandler] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Initialize the client.

        Args:
            account_name: Account identifier, also the cursor key
            token: Whatnot seller API token
            cursor_store: Cursor persistence
            start_at: Minimum creation date for the account (overrides WHATNOT_INITIAL_SYNC_DATE)
            settings: Application settings
            session: Existing aiohttp session (not closed by the client)
            retry_handler: Retry handler for read queries
            sleep: Sleep function used between pages

        Raises:
            ConfigurationException: If the token or account name is missing
        """
        if not token:
            raise ConfigurationException("Whatnot API token is required", setting="whatnotToken")
        if not account_name:
            raise ConfigurationException("Account name is required", setting="name")

        self.settings = settings or get_settings()
        self.account_name = account_name
        self.token = token
        self.cursor_store = cursor_store
        self.start_at = start_at or self.settings.WHATNOT_INITIAL_SYNC_DATE
        self.api_url = self.settings.WHATNOT_API_URL

        self._sleep = sleep or asyncio.sleep
        self.retry_handler = retry_handler or create_whatnot_retry_handler(self.settings, sleep=self._sleep)

        self.session = session
        self._owns_session = session is None

    async def initialize(self):
        """Create the HTTP session if none was provided."""
        if self.session is None:
            timeout = ClientTimeout(total=self.settings.WHATNOT_REQUEST_TIMEOUT, connect=10)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=self.settings.get_whatnot_headers(self.token),
            )
            self._owns_session = True
            logger.debug(f"Initialized Whatnot client for account {self.account_name}")

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

    async def _post_graphql(self, query: str, variables: Dict[str, Any], operation: str) -> Dict[str, Any]:
        """
        Send one GraphQL request.

        Returns:
            Dict: ``data`` section of the response

        Raises:
            AuthenticationException: On HTTP 401
            WhatnotAPIException: On HTTP errors or GraphQL errors
        """
        if self.session is None:
            await self.initialize()

        payload = {"query": query, "variables": variables}
        start = time.monotonic()

        async with self.session.post(
            self.api_url, json=payload, headers=self.settings.get_whatnot_headers(self.token)
        ) as response:
            status = response.status
            log_api_call("POST", self.api_url, status, time.monotonic() - start, operation=operation)

            if status == 401:
                raise AuthenticationException(
                    "Invalid Whatnot API token", service="whatnot", endpoint=self.api_url
                )

            try:
                body = await response.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError):
                body = None

            if status == 429:
                raise WhatnotAPIException(
                    f"{operation}: rate limited by Whatnot", status_code=status, is_retryable=True
                )

            if status >= 400 or not isinstance(body, dict):
                raise WhatnotAPIException(f"{operation}: HTTP {status}", status_code=status)

        errors = body.get("errors")
        if errors:
            messages = [err.get("message", str(err)) if isinstance(err, dict) else str(err) for err in errors]
            raise WhatnotAPIException(f"{operation} GraphQL errors: {', '.join(messages)}")

        return body.get("data") or {}

    async def _execute_query(self, query: str, variables: Dict[str, Any], operation: str) -> Dict[str, Any]:
        """Execute a read query, retrying network failures."""
        try:
            return await self.retry_handler.execute(
                self._post_graphql,
                query,
                variables,
                operation,
                context={"account": self.account_name, "operation": operation},
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise WhatnotAPIException(f"{operation}: network error: {e}") from e

    # === ORDERS ===

    async def fetch_orders(self) -> List[MarketplaceOrder]:
        """
        Fetch every order created since the stored cursor.

        Without a stored cursor the account start date (or
        WHATNOT_INITIAL_SYNC_DATE) bounds the first page.

        Returns:
            List[MarketplaceOrder]: Orders in creation order

        Raises:
            ConfigurationException: If there is no cursor and no start date
        """
        cursor = await self.cursor_store.load_cursor(self.account_name)

        if not cursor and not self.start_at:
            raise ConfigurationException(
                f"WHATNOT_INITIAL_SYNC_DATE must be set when account {self.account_name} has no cursor and no startAt",
                setting="WHATNOT_INITIAL_SYNC_DATE",
            )

        if cursor:
            logger.info(f"Resuming sync for account {self.account_name} from stored cursor")
        else:
            logger.info(f"No cursor found for account {self.account_name}. Starting from date: {self.start_at}")

        page_size = self.settings.WHATNOT_PAGE_SIZE
        orders: List[MarketplaceOrder] = []
        after = cursor
        has_next_page = True

        while has_next_page:
            variables: Dict[str, Any] = {"first": page_size, "after": after}
            if self.start_at:
                variables["filter"] = {"createdAt": {"gt": self.start_at}}

            data = await self._execute_query(ORDERS_QUERY, variables, "orders")
            connection = data.get("orders") or {}
            edges = connection.get("edges") or []

            if not edges:
                logger.info(f"No more orders found for account {self.account_name}")
                break

            for edge in edges:
                node = edge.get("node")
                if not node:
                    continue
                order = MarketplaceOrder.from_graphql(node)
                if order.items_has_next_page:
                    order = order.with_items(await self.fetch_order_items(order.id))
                orders.append(order)

            page_info = connection.get("pageInfo") or {}
            has_next_page = bool(page_info.get("hasNextPage"))
            after = page_info.get("endCursor") or edges[-1].get("cursor")

            await self.cursor_store.save_cursor(self.account_name, after)
            logger.info(f"Fetched {len(edges)} orders. Total orders: {len(orders)}")

            if has_next_page and not after:
                logger.warning(f"Whatnot reported more pages without a cursor for {self.account_name}; stopping")
                break

            if has_next_page and self.settings.WHATNOT_PAGE_DELAY_SECONDS > 0:
                await self._sleep(self.settings.WHATNOT_PAGE_DELAY_SECONDS)

        return orders

    async def fetch_order_items(self, order_id: str) -> List[LineItem]:
        """
        Fetch all line items of one order.

        Raises:
            WhatnotAPIException: If the order cannot be read
        """
        items: List[LineItem] = []
        after: Optional[str] = None
        has_next_page = True

        while has_next_page:
            variables = {"orderId": order_id, "first": self.settings.WHATNOT_ITEMS_PAGE_SIZE, "after": after}
            data = await self._execute_query(ORDER_ITEMS_QUERY, variables, "orderItems")

            order = data.get("order")
            if order is None:
                raise WhatnotAPIException(f"Order {order_id} not found while fetching items")

            connection = order.get("items") or {}
            edges = connection.get("edges") or []
            if not edges:
                break

            items.extend(LineItem.from_graphql(edge["node"]) for edge in edges if edge.get("node"))

            page_info = connection.get("pageInfo") or {}
            has_next_page = bool(page_info.get("hasNextPage"))
            after = page_info.get("endCursor")
            if not after:
                break

        logger.debug(f"Fetched {len(items)} items for order {order_id}")
        return items

    # === TRACKING ===

    async def attach_tracking(self, order_ids: Sequence[str], tracking_code: str, courier: str) -> Dict[str, Any]:
        """
        Attach a tracking code to one or more orders.

        The mutation is sent once, never retried.

        Raises:
            TrackingAlreadyExistsException: If Whatnot refuses because tracking is already set
            WhatnotAPIException: For any other user error
        """
        order_ids = list(order_ids)
        variables = {"input": {"orderIds": order_ids, "trackingCode": tracking_code, "courier": courier}}

        try:
            data = await self._post_graphql(ADD_TRACKING_CODE_MUTATION, variables, "addTrackingCode")
        except WhatnotAPIException as e:
            if not isinstance(e, TrackingAlreadyExistsException) and is_already_tracked_message(e.message):
                raise TrackingAlreadyExistsException(e.message, order_ids=order_ids) from e
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise WhatnotAPIException(f"addTrackingCode: network error: {e}") from e

        user_errors = (data.get("addTrackingCode") or {}).get("userErrors") or []
        if user_errors:
            message = f"Failed to add tracking code: {_format_user_errors(user_errors)}"
            if any(is_already_tracked_message(error.get("message")) for error in user_errors):
                raise TrackingAlreadyExistsException(message, order_ids=order_ids, user_errors=user_errors)
            raise WhatnotAPIException(message, user_errors=user_errors)

        log_sync_operation("attach_tracking", "whatnot", order_ids=order_ids, courier=courier)
        return data

    async def update_orders_tracking(
        self, order_id_groups: Sequence[Sequence[str]], tracking_code: str, courier: str
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Attach the same tracking code to several groups of orders.

        Returns:
            Dict: ``successful`` and ``failed`` lists; failures carry the
            error text and whether the orders were already tracked
        """
        results: Dict[str, List[Dict[str, Any]]] = {"successful": [], "failed": []}

        for order_ids in order_id_groups:
            order_ids = list(order_ids)
            try:
                await self.attach_tracking(order_ids, tracking_code, courier)
                results["successful"].append(
                    {"order_ids": order_ids, "tracking_code": tracking_code, "courier": courier}
                )
            except WhatnotAPIException as e:
                results["failed"].append(
                    {
                        "order_ids": order_ids,
                        "tracking_code": tracking_code,
                        "courier": courier,
                        "error": error_message(e),
                        "already_tracked": isinstance(e, TrackingAlreadyExistsException),
                    }
                )

        if results["failed"]:
            logger.warning(f"{len(results['failed'])} tracking updates failed for account {self.account_name}")

        return results
