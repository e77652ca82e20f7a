"""
SyncService - entry point for order-sync and tracking-update runs.

Owns the current ``RunState`` and guarantees that at most one run is
active in the process. A start request while a run is active is
rejected with ``SyncAlreadyRunningException``, never queued.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ordersync.core.accounts import Account, enabled_accounts, find_account, load_accounts
from ordersync.core.config import Settings, get_settings
from ordersync.db.shipstation_client import ShipStationClient
from ordersync.db.whatnot_client import WhatnotClient
from ordersync.services.orders.orchestrator import OrderSyncOrchestrator, SyncResult
from ordersync.services.orders.validators import OrderValidator
from ordersync.services.progress import (
    LogDeduplicator,
    ProgressBus,
    ProgressCallback,
    ProgressEvent,
    ProgressPhase,
    RunType,
)
from ordersync.services.state_store import CursorStore, JsonStateBackend, SyncTimeStore, TrackingStateStore
from ordersync.services.tracking.orchestrator import TrackingResult, TrackingUpdateOrchestrator
from ordersync.utils.error_handler import SyncAlreadyRunningException, error_message, log_error
from ordersync.utils.formatting import to_iso

logger = logging.getLogger(__name__)

AccountSelector = Optional[Sequence[Union[str, Account]]]


class RunStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    VALIDATING = "validating"
    CREATING = "creating"
    FILTERING = "filtering"
    UPDATING = "updating"
    COMPLETE = "complete"
    ERROR = "error"


PHASE_STATUS = {
    ProgressPhase.FETCH: RunStatus.FETCHING,
    ProgressPhase.VALIDATION: RunStatus.VALIDATING,
    ProgressPhase.CREATION_START: RunStatus.CREATING,
    ProgressPhase.CREATION: RunStatus.CREATING,
    ProgressPhase.FILTERING: RunStatus.FILTERING,
    ProgressPhase.UPDATING: RunStatus.UPDATING,
    ProgressPhase.COMPLETE: RunStatus.COMPLETE,
    ProgressPhase.ERROR: RunStatus.ERROR,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    message: str
    level: str = "info"


@dataclass(frozen=True)
class AccountSnapshot:
    name: str
    processed: int = 0
    total: int = 0


@dataclass(frozen=True)
class RunState:
    """
    Snapshot of the current (or last) run.

    ``logs`` is newest-first and capped at MAX_STATUS_LOGS.
    """

    status: RunStatus = RunStatus.IDLE
    run_type: Optional[RunType] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    processed: int = 0
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    accounts: Tuple[AccountSnapshot, ...] = ()
    logs: Tuple[LogEntry, ...] = ()

    @property
    def is_running(self) -> bool:
        return self.status not in (RunStatus.IDLE, RunStatus.COMPLETE, RunStatus.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "status": self.status.value,
            "type": self.run_type.value if self.run_type else None,
            "startTime": self.started_at,
            "endTime": self.finished_at,
            "progress": {
                "total": self.total,
                "processed": self.processed,
                "successful": self.succeeded,
                "failed": self.failed,
            },
            "accounts": [
                {"name": account.name, "processed": account.processed, "total": account.total}
                for account in self.accounts
            ],
            "logs": [
                {"timestamp": entry.timestamp, "message": entry.message, "type": entry.level}
                for entry in self.logs
            ],
        }


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


class SyncService:
    """
    Runs the two pipelines for the configured accounts.

    Collaborators default to the real clients and stores built from
    settings; tests inject factories instead.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        bus: Optional[ProgressBus] = None,
        accounts_loader: Optional[Callable[[], List[Account]]] = None,
        state_backend: Optional[JsonStateBackend] = None,
        shipstation_client_factory: Optional[Callable[[], Any]] = None,
        whatnot_client_factory: Optional[Callable[[Account], Any]] = None,
        validator: Optional[OrderValidator] = None,
    ):
        self.settings = settings or get_settings()
        self.bus = bus or ProgressBus(self.settings.PROGRESS_QUEUE_SIZE)
        self.validator = validator or OrderValidator()

        self._accounts_loader = accounts_loader or (lambda: load_accounts(self.settings.ACCOUNTS_FILE))
        self._backend = state_backend or JsonStateBackend.from_settings(self.settings)
        self._shipstation_client_factory = shipstation_client_factory or self._default_shipstation_client
        self._whatnot_client_factory = whatnot_client_factory or self._default_whatnot_client

        self._state = RunState()
        self._active: Optional[RunType] = None
        self._dedup = LogDeduplicator(self.settings.LOG_DEDUP_WINDOW_SECONDS)
        self.bus.subscribe(self._on_event)

    # === COLLABORATORS ===

    def _default_shipstation_client(self) -> ShipStationClient:
        return ShipStationClient(
            settings=self.settings,
            sync_time_store=SyncTimeStore(self._backend, lookback_days=self.settings.TRACKING_DEFAULT_LOOKBACK_DAYS),
        )

    def _default_whatnot_client(self, account: Account) -> WhatnotClient:
        return WhatnotClient(
            account_name=account.name,
            token=account.whatnot_token,
            cursor_store=CursorStore(self._backend),
            start_at=account.start_at,
            settings=self.settings,
        )

    def resolve_accounts(self, accounts: AccountSelector = None) -> List[Account]:
        """
        Accounts of a run.

        Args:
            accounts: Account names or Account objects; None means every
                enabled account of ACCOUNTS_FILE

        Raises:
            ConfigurationException: If the accounts file is unusable or a name is unknown
        """
        if accounts is None:
            selected = enabled_accounts(self._accounts_loader())
            logger.info(f"Loaded {len(selected)} enabled accounts")
            return selected

        known: Optional[List[Account]] = None
        selected = []
        for account in accounts:
            if isinstance(account, Account):
                selected.append(account)
                continue
            if known is None:
                known = self._accounts_loader()
            selected.append(find_account(known, account))
        return selected

    # === STATUS ===

    def get_status(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._active is not None

    def _add_log(self, state: RunState, message: Optional[str], level: str) -> RunState:
        if not message or not self._dedup.should_emit(message, level):
            return state
        logs = (LogEntry(timestamp=_now_iso(), message=message, level=level),) + state.logs
        return replace(state, logs=logs[: self.settings.MAX_STATUS_LOGS])

    def _on_event(self, event: ProgressEvent) -> None:
        state = self._state

        if not event.log_only:
            status = PHASE_STATUS.get(event.phase, state.status)
            state = replace(
                state,
                status=status,
                processed=event.processed,
                total=event.total,
                succeeded=event.succeeded,
                failed=event.failed,
            )
            if event.account:
                snapshot = AccountSnapshot(event.account, event.account_processed, event.account_total)
                if any(account.name == event.account for account in state.accounts):
                    accounts = tuple(
                        snapshot if account.name == event.account else account for account in state.accounts
                    )
                else:
                    accounts = state.accounts + (snapshot,)
                state = replace(state, accounts=accounts)
        elif event.phase in PHASE_STATUS:
            state = replace(state, status=PHASE_STATUS[event.phase])

        if event.is_terminal:
            state = replace(state, finished_at=_now_iso())

        self._state = self._add_log(state, event.message, event.level)

    # === RUNS ===

    def _start(self, run_type: RunType) -> None:
        # No await between the check and the assignment
        if self._active is not None:
            raise SyncAlreadyRunningException(running=self._active.value)

        self._active = run_type
        self._dedup = LogDeduplicator(self.settings.LOG_DEDUP_WINDOW_SECONDS)
        self._state = RunState(status=RunStatus.FETCHING, run_type=run_type, started_at=_now_iso())
        logger.info(f"Starting {run_type.value} run")

    async def _fail(self, run_type: RunType, exception: Exception) -> None:
        log_error(exception, context={"run_type": run_type.value})
        state = self._state
        await self.bus.publish(
            ProgressEvent(
                phase=ProgressPhase.ERROR,
                run_type=run_type,
                processed=state.processed,
                total=state.total,
                succeeded=state.succeeded,
                failed=state.failed,
                message=f"{run_type.value} failed: {error_message(exception)}",
                level="error",
            )
        )

    async def run_order_sync(
        self, accounts: AccountSelector = None, on_progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """
        Sync new Whatnot orders into ShipStation.

        Raises:
            SyncAlreadyRunningException: If a run is already active
            ConfigurationException: If the run cannot be set up
        """
        self._start(RunType.ORDER_SYNC)
        unsubscribe = self.bus.subscribe(on_progress) if on_progress else None

        try:
            selected = self.resolve_accounts(accounts)
            async with self._shipstation_client_factory() as shipstation:
                orchestrator = OrderSyncOrchestrator(
                    whatnot_client_factory=self._whatnot_client_factory,
                    shipstation_client=shipstation,
                    validator=self.validator,
                    bus=self.bus,
                )
                return await orchestrator.run(selected)
        except Exception as e:
            await self._fail(RunType.ORDER_SYNC, e)
            raise
        finally:
            if unsubscribe:
                unsubscribe()
            self._active = None

    async def run_tracking_update(
        self, accounts: AccountSelector = None, on_progress: Optional[ProgressCallback] = None
    ) -> TrackingResult:
        """
        Push ShipStation tracking numbers to Whatnot.

        Raises:
            SyncAlreadyRunningException: If a run is already active
            ConfigurationException: If the run cannot be set up
        """
        self._start(RunType.TRACKING_UPDATE)
        unsubscribe = self.bus.subscribe(on_progress) if on_progress else None

        try:
            selected = self.resolve_accounts(accounts)
            async with self._shipstation_client_factory() as shipstation:
                orchestrator = TrackingUpdateOrchestrator(
                    whatnot_client_factory=self._whatnot_client_factory,
                    shipstation_client=shipstation,
                    state_store=TrackingStateStore(self._backend),
                    bus=self.bus,
                    settings=self.settings,
                )
                return await orchestrator.run(selected)
        except Exception as e:
            await self._fail(RunType.TRACKING_UPDATE, e)
            raise
        finally:
            if unsubscribe:
                unsubscribe()
            self._active = None

    async def close(self) -> None:
        await self._backend.close()
