"""
TrackingUpdateOrchestrator - ShipStation → Whatnot tracking pipeline.

Per account: load the sync watermark and the in-flight batch state →
list shipped packages since the watermark → drop shipments already
attempted → push each tracking code to Whatnot, checkpointing after
every shipment. The watermark only advances once the whole batch has
been attempted.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

import pytz

from ordersync.core.accounts import Account
from ordersync.core.config import Settings, get_settings
from ordersync.core.logging_config import LogContext
from ordersync.domain.models import Shipment
from ordersync.services.interfaces import IFulfillmentClient, IMarketplaceClient, MarketplaceClientFactory
from ordersync.services.progress import ProgressBus, ProgressEvent, ProgressPhase, RunType
from ordersync.services.state_store import TrackingState, TrackingStateStore
from ordersync.services.tracking.carrier_mapping import map_carrier_to_courier
from ordersync.utils.error_handler import error_message, is_already_tracked_message, log_error
from ordersync.utils.formatting import parse_datetime, to_iso

logger = logging.getLogger(__name__)

MISSING_TRACKING_ERROR = "Missing tracking number or Whatnot order IDs"


@dataclass
class AccountTrackingResult:
    """Outcome of the tracking update of one account."""

    name: str
    fetched: int = 0
    skipped: int = 0
    total: int = 0
    processed: int = 0
    updated: int = 0
    already_tracked: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class TrackingResult:
    """Aggregated outcome of a tracking-update run."""

    accounts: list[AccountTrackingResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(account.processed for account in self.accounts)

    @property
    def total(self) -> int:
        return sum(account.total for account in self.accounts)

    @property
    def updated(self) -> int:
        return sum(account.updated for account in self.accounts)

    @property
    def already_tracked(self) -> int:
        return sum(account.already_tracked for account in self.accounts)

    @property
    def errors(self) -> list[dict[str, Any]]:
        return [error for account in self.accounts for error in account.errors]

    @property
    def success(self) -> bool:
        return all(account.success for account in self.accounts)


class TrackingUpdateOrchestrator:
    """
    Orchestrates tracking updates for one or many accounts.

    A shipment counts as processed once Whatnot has been asked to track
    each of its orders, whatever the answers. It is an error if any
    order failed, updated if at least one order took the code, and
    already tracked when every order already had one.
    """

    def __init__(
        self,
        whatnot_client_factory: MarketplaceClientFactory,
        shipstation_client: IFulfillmentClient,
        state_store: TrackingStateStore,
        bus: ProgressBus,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.whatnot_client_factory = whatnot_client_factory
        self.shipstation_client = shipstation_client
        self.state_store = state_store
        self.bus = bus
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _publish(
        self,
        phase: ProgressPhase,
        done: TrackingResult,
        current: Optional[AccountTrackingResult] = None,
        **kwargs,
    ) -> None:
        processed = done.processed
        total = done.total
        updated = done.updated
        already_tracked = done.already_tracked
        failed = len(done.errors)

        if current is not None:
            processed += current.processed
            total += current.total
            updated += current.updated
            already_tracked += current.already_tracked
            failed += len(current.errors)

        await self.bus.publish(
            ProgressEvent(
                phase=phase,
                run_type=RunType.TRACKING_UPDATE,
                account=current.name if current is not None else None,
                processed=processed,
                total=total,
                succeeded=updated,
                failed=failed,
                already_tracked=already_tracked,
                account_processed=current.processed if current is not None else 0,
                account_total=current.total if current is not None else 0,
                **kwargs,
            )
        )

    async def run(self, accounts: Sequence[Account]) -> TrackingResult:
        """
        Update tracking for every account.

        Returns:
            TrackingResult: Per-account results; the terminal ``complete``
            event has already been published
        """
        result = TrackingResult()
        logger.info(f"Starting ShipStation to Whatnot tracking update for {len(accounts)} accounts")

        for account in accounts:
            with LogContext(account=account.name, run_type=RunType.TRACKING_UPDATE.value):
                account_result = await self.update_account(account, result)
            result.accounts.append(account_result)

        logger.info(
            f"Tracking update complete: {result.processed} shipments processed, {result.updated} updated, "
            f"{result.already_tracked} already tracked, {len(result.errors)} errors"
        )
        await self._publish(
            ProgressPhase.COMPLETE,
            result,
            message=(
                f"Tracking update complete: {result.updated} updated, "
                f"{result.already_tracked} already tracked, {len(result.errors)} errors"
            ),
            level="info" if result.success else "warning",
        )
        return result

    async def update_account(self, account: Account, done: Optional[TrackingResult] = None) -> AccountTrackingResult:
        """
        Update tracking for one account.

        Any exception is recorded against the account instead of being raised.
        """
        if done is None:
            done = TrackingResult()
        result = AccountTrackingResult(name=account.name)

        if not account.enabled:
            logger.info(f"Account {account.name} is disabled, skipping")
            return result

        logger.info(f"=== Processing tracking updates for account: {account.name} ===")

        try:
            async with self.whatnot_client_factory(account) as whatnot:
                await self._update_account(account, whatnot, result, done)
        except Exception as e:
            log_error(e, context={"account_name": account.name, "operation": "update_tracking"})
            result.errors.append({"account": account.name, "error": error_message(e)})
            await self._publish(
                ProgressPhase.ACCOUNT_COMPLETE,
                done,
                result,
                message=f"Error processing account {account.name}: {error_message(e)}",
                level="error",
            )
            return result

        await self._publish(
            ProgressPhase.ACCOUNT_COMPLETE,
            done,
            result,
            message=(
                f"Processed {result.processed} shipments for {account.name}: {result.updated} updated, "
                f"{result.already_tracked} already tracked, {len(result.errors)} errors"
            ),
            level="info" if result.success else "warning",
        )
        return result

    def _created_after(self, shipment: Shipment, watermark: Optional[datetime]) -> bool:
        if watermark is None or not shipment.create_date:
            return True
        created = parse_datetime(shipment.create_date, self.settings.SHIPSTATION_TIMEZONE)
        return created > watermark

    async def _update_account(
        self,
        account: Account,
        whatnot: IMarketplaceClient,
        result: AccountTrackingResult,
        done: TrackingResult,
    ) -> None:
        store_id = account.shipstation_store_id
        run_started = to_iso(self._clock())

        last_sync_time = await self.shipstation_client.get_sync_time(store_id)
        state = await self.state_store.load(store_id)
        if state is None:
            state = TrackingState(last_sync_time=last_sync_time)
        elif state.last_processed_shipment_id:
            logger.info(
                f"Resuming from last processed shipment {state.last_processed_shipment_id} "
                f"({len(state.processed_shipment_ids)} already processed)"
            )

        watermark = parse_datetime(last_sync_time)
        start_date = None
        if watermark is not None:
            start_date = watermark.astimezone(pytz.timezone(self.settings.SHIPSTATION_TIMEZONE)).date()

        listing = await self.shipstation_client.list_shipped_with_tracking(store_id, start_date=start_date)
        new_shipments = [shipment for shipment in listing.shipments if self._created_after(shipment, watermark)]
        result.fetched = len(new_shipments)

        await self._publish(
            ProgressPhase.FETCH,
            done,
            result,
            message=f"Found {len(new_shipments)} shipments with tracking since {last_sync_time}",
            log_only=True,
        )

        batch = [shipment for shipment in new_shipments if not state.is_processed(shipment.shipment_id)]
        result.skipped = len(new_shipments) - len(batch)
        result.total = len(batch)

        await self._publish(
            ProgressPhase.FILTERING,
            done,
            result,
            message=f"Filtered out {result.skipped} already processed shipments, {len(batch)} remaining",
            log_only=True,
        )

        if not batch:
            logger.info(f"No new shipments to process for {account.name}")
            await self._publish(ProgressPhase.UPDATING, done, result, message="No new shipments to process")

        for shipment in batch:
            await self._push_tracking(whatnot, shipment, result)

            state.mark_processed(shipment.shipment_id)
            await self.state_store.save(store_id, state)

            await self._publish(
                ProgressPhase.UPDATING,
                done,
                result,
                message=f"Processed {result.processed}/{result.total} shipments",
            )

        # Batch exhausted
        await self.shipstation_client.save_sync_time(store_id, run_started)
        await self.state_store.clear(store_id)

    async def _push_tracking(self, whatnot: IMarketplaceClient, shipment: Shipment, result: AccountTrackingResult) -> None:
        order_ids = list(shipment.marketplace_order_ids)
        result.processed += 1

        if not shipment.tracking_number or not order_ids:
            logger.warning(f"Skipping shipment {shipment.shipment_id}: {MISSING_TRACKING_ERROR}")
            result.errors.append(
                {"shipment_id": shipment.shipment_id, "order_ids": order_ids, "error": MISSING_TRACKING_ERROR}
            )
            return

        courier = map_carrier_to_courier(shipment.carrier_code, self.settings.DEFAULT_COURIER)
        logger.info(
            f"Updating tracking for orders {', '.join(order_ids)}: {shipment.tracking_number} ({courier})"
        )

        # One mutation per order so an already tracked sibling never blocks the others
        outcome = await whatnot.update_orders_tracking(
            [[order_id] for order_id in order_ids], shipment.tracking_number, courier
        )

        already_tracked = []
        failures = []
        for entry in outcome["failed"]:
            if entry.get("already_tracked") or is_already_tracked_message(entry.get("error")):
                already_tracked.append(entry)
            else:
                failures.append(entry)

        for entry in already_tracked:
            logger.info(f"Orders {', '.join(entry['order_ids'])} already have tracking: {entry['error']}")

        if failures:
            failed_ids = [order_id for entry in failures for order_id in entry["order_ids"]]
            error = "; ".join(dict.fromkeys(entry["error"] for entry in failures))
            logger.error(f"Failed to update tracking for shipment {shipment.shipment_id}: {error}")
            result.errors.append({"shipment_id": shipment.shipment_id, "order_ids": failed_ids, "error": error})
        elif outcome["successful"]:
            result.updated += 1
        else:
            result.already_tracked += 1
