"""
OrderSyncOrchestrator - Whatnot → ShipStation order pipeline.

Per account: fetch new orders → validate → consolidate → create the
consolidated orders in ShipStation one group at a time. Accounts are
processed sequentially; a failing account is recorded and the run
moves on to the next one.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from ordersync.core.accounts import Account
from ordersync.core.logging_config import LogContext
from ordersync.services.interfaces import IFulfillmentClient, MarketplaceClientFactory
from ordersync.services.orders.validators import InvalidOrder, OrderValidator
from ordersync.services.progress import ProgressBus, ProgressEvent, ProgressPhase, RunType
from ordersync.utils.error_handler import error_message, log_error

logger = logging.getLogger(__name__)


@dataclass
class AccountSyncResult:
    """Outcome of the order sync of one account."""

    name: str
    processed: int = 0
    valid: int = 0
    grouped: int = 0
    created_orders: list[dict[str, Any]] = field(default_factory=list)
    invalid_orders: list[InvalidOrder] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def created(self) -> int:
        return len(self.created_orders)

    @property
    def invalid(self) -> int:
        return len(self.invalid_orders)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class SyncResult:
    """Aggregated outcome of an order-sync run."""

    accounts: list[AccountSyncResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(account.processed for account in self.accounts)

    @property
    def created(self) -> int:
        return sum(account.created for account in self.accounts)

    @property
    def invalid(self) -> int:
        return sum(account.invalid for account in self.accounts)

    @property
    def errors(self) -> list[dict[str, Any]]:
        return [error for account in self.accounts for error in account.errors]

    @property
    def success(self) -> bool:
        return all(account.success for account in self.accounts)


class OrderSyncOrchestrator:
    """
    Orchestrates order creation for one or many accounts.

    Progress denominators are Whatnot orders fetched, not ShipStation
    orders created, so a run always reaches processed == total even
    when consolidation merged orders.
    """

    def __init__(
        self,
        whatnot_client_factory: MarketplaceClientFactory,
        shipstation_client: IFulfillmentClient,
        validator: OrderValidator,
        bus: ProgressBus,
    ):
        """
        Initialize orchestrator with service dependencies (DIP).

        Args:
            whatnot_client_factory: Builds the Whatnot client of an account
            shipstation_client: Client creating the ShipStation orders
            validator: Order validator
            bus: Progress channel
        """
        self.whatnot_client_factory = whatnot_client_factory
        self.shipstation_client = shipstation_client
        self.validator = validator
        self.bus = bus

    async def _publish(
        self,
        phase: ProgressPhase,
        done: SyncResult,
        current: AccountSyncResult | None = None,
        account_processed: int = 0,
        account_created: int | None = None,
        account_failed: int | None = None,
        **kwargs,
    ) -> None:
        """Publish an event whose aggregate counters include the account in progress."""
        processed = done.processed
        total = done.processed
        succeeded = done.created
        failed = len(done.errors)
        invalid = done.invalid

        if current is not None:
            processed += account_processed
            total += current.processed
            succeeded += current.created if account_created is None else account_created
            failed += len(current.errors) if account_failed is None else account_failed
            invalid += current.invalid

        await self.bus.publish(
            ProgressEvent(
                phase=phase,
                run_type=RunType.ORDER_SYNC,
                account=current.name if current is not None else None,
                processed=processed,
                total=total,
                succeeded=succeeded,
                failed=failed,
                invalid=invalid,
                account_processed=account_processed,
                account_total=current.processed if current is not None else 0,
                **kwargs,
            )
        )

    async def run(self, accounts: Sequence[Account]) -> SyncResult:
        """
        Sync orders for every account.

        Returns:
            SyncResult: Per-account results; the terminal ``complete``
            event has already been published
        """
        result = SyncResult()
        logger.info(f"Starting Whatnot to ShipStation order sync for {len(accounts)} accounts")

        for account in accounts:
            with LogContext(account=account.name, run_type=RunType.ORDER_SYNC.value):
                account_result = await self.sync_account(account, result)
            result.accounts.append(account_result)

        logger.info(
            f"Order sync complete: {result.processed} processed, {result.created} created, "
            f"{result.invalid} invalid, {len(result.errors)} errors"
        )
        await self._publish(
            ProgressPhase.COMPLETE,
            result,
            message=(
                f"Sync complete: {result.created} ShipStation orders created from "
                f"{result.processed} Whatnot orders, {len(result.errors)} errors"
            ),
            level="info" if result.success else "warning",
        )
        return result

    async def sync_account(self, account: Account, done: SyncResult | None = None) -> AccountSyncResult:
        """
        Sync the orders of one account.

        Any exception is recorded against the account instead of being raised.
        """
        if done is None:
            done = SyncResult()
        result = AccountSyncResult(name=account.name)

        if not account.enabled:
            logger.info(f"Account {account.name} is disabled, skipping")
            return result

        logger.info(f"=== Processing account: {account.name} ===")

        try:
            await self._sync_account(account, result, done)
        except Exception as e:
            log_error(e, context={"account_name": account.name, "operation": "sync_orders"})
            result.errors.append({"account": account.name, "error": error_message(e)})
            await self._publish(
                ProgressPhase.ACCOUNT_COMPLETE,
                done,
                result,
                account_processed=result.processed,
                message=f"Error processing account {account.name}: {error_message(e)}",
                level="error",
            )
            return result

        await self._publish(
            ProgressPhase.ACCOUNT_COMPLETE,
            done,
            result,
            account_processed=result.processed,
            message=(
                f"Completed creation of {result.created} ShipStation orders for {account.name}. "
                f"{len(result.errors)} failed."
            ),
            level="info" if result.success else "warning",
        )
        return result

    async def _sync_account(self, account: Account, result: AccountSyncResult, done: SyncResult) -> None:
        async with self.whatnot_client_factory(account) as whatnot:
            orders = await whatnot.fetch_orders()

        result.processed = len(orders)
        await self._publish(
            ProgressPhase.FETCH,
            done,
            result,
            message=f"Fetched {len(orders)} orders from Whatnot",
            log_only=True,
        )

        if not orders:
            logger.info(f"No new orders to process for {account.name}")
            return

        validation = self.validator.validate(orders)
        result.valid = len(validation.valid)
        result.invalid_orders = validation.invalid

        await self._publish(
            ProgressPhase.VALIDATION,
            done,
            result,
            message=f"Validated orders: {len(validation.valid)} valid, {len(validation.invalid)} invalid",
            log_only=True,
        )

        for invalid in validation.invalid:
            logger.info(f"Order {invalid.order.id} skipped: {', '.join(invalid.errors)}")

        if not validation.valid:
            logger.info(f"No valid orders to create in ShipStation for {account.name}")
            return

        await self._publish(
            ProgressPhase.CREATION_START,
            done,
            result,
            message=f"Starting to create ShipStation orders from {len(validation.valid)} valid Whatnot orders.",
            log_only=True,
        )

        fetched = len(orders)

        async def on_creation_progress(progress) -> None:
            result.grouped = progress.total
            ratio = min(progress.attempted / progress.total, 1) if progress.total > 0 else 0
            await self._publish(
                ProgressPhase.CREATION,
                done,
                result,
                account_processed=int(fetched * ratio),
                account_created=progress.created,
                account_failed=progress.failed,
                message=(
                    f"Created {progress.created}/{progress.total} ShipStation orders "
                    f"({round(ratio * 100)}% complete)"
                ),
            )

        creation = await self.shipstation_client.create_orders(
            validation.valid, account.shipstation_store_id, on_progress=on_creation_progress
        )

        result.grouped = creation.grouped_count
        result.created_orders = list(creation.successful)
        result.errors.extend(creation.failed)

        for failed in creation.failed:
            logger.error(
                f"Stream {failed.get('session_id')}: orders {', '.join(failed.get('whatnot_ids') or [])} "
                f"failed: {failed.get('error')}"
            )
