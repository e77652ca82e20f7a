"""Tests unitarios para SyncService: ejecución única, estado y logs."""

import asyncio
from unittest.mock import MagicMock

import pytest

from ordersync.core.accounts import Account
from ordersync.db.shipstation_client import CreateOrdersResult, ShipmentListing
from ordersync.services.progress import ProgressEvent, ProgressPhase, RunType
from ordersync.services.sync_service import RunStatus, SyncService
from ordersync.utils.error_handler import ConfigurationException, SyncAlreadyRunningException
from tests.fakes import make_order


class FakeShipStation:
    def __init__(self):
        self.created = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def create_orders(self, orders, store_id, on_progress=None):
        self.created.extend(orders)
        return CreateOrdersResult(
            successful=[{"whatnot_ids": [order.id]} for order in orders], grouped_count=len(orders)
        )

    async def list_shipped_with_tracking(self, store_id, start_date=None, end_date=None):
        return ShipmentListing()

    async def get_sync_time(self, store_id):
        return "2024-03-15T00:00:00.000Z"

    async def save_sync_time(self, store_id, last_sync_time):
        return None


class FakeWhatnot:
    def __init__(self, orders, gate=None):
        self.orders = orders
        self.gate = gate

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def fetch_orders(self):
        if self.gate is not None:
            await self.gate.wait()
        return list(self.orders)

    async def update_orders_tracking(self, order_id_groups, tracking_code, courier):
        return {"successful": [{"order_ids": list(ids)} for ids in order_id_groups], "failed": []}


@pytest.fixture
def accounts():
    return [
        Account(name="main", whatnot_token="token-main", shipstation_store_id="123"),
        Account(name="second", whatnot_token="token-2", shipstation_store_id="456"),
        Account(name="off", enabled=False, whatnot_token="token-3", shipstation_store_id="789"),
    ]


def build_service(settings, backend, accounts, orders=(), gate=None, accounts_loader=None):
    shipstation = FakeShipStation()
    service = SyncService(
        settings=settings,
        accounts_loader=accounts_loader or (lambda: list(accounts)),
        state_backend=backend,
        shipstation_client_factory=lambda: shipstation,
        whatnot_client_factory=lambda account: FakeWhatnot(list(orders), gate),
    )
    return service, shipstation


class TestResolveAccounts:
    """Tests para SyncService.resolve_accounts."""

    def test_defaults_to_enabled_accounts(self, settings, backend, accounts):
        service, _ = build_service(settings, backend, accounts)

        assert [account.name for account in service.resolve_accounts()] == ["main", "second"]

    def test_selects_by_name(self, settings, backend, accounts):
        service, _ = build_service(settings, backend, accounts)

        assert [account.name for account in service.resolve_accounts(["second"])] == ["second"]

    def test_unknown_name(self, settings, backend, accounts):
        service, _ = build_service(settings, backend, accounts)

        with pytest.raises(ConfigurationException):
            service.resolve_accounts(["missing"])

    def test_account_objects_are_used_as_is(self, settings, backend, accounts):
        loader = MagicMock()
        service, _ = build_service(settings, backend, accounts, accounts_loader=loader)

        assert service.resolve_accounts([accounts[0]]) == [accounts[0]]
        loader.assert_not_called()


class TestRunOrderSync:
    """Tests para SyncService.run_order_sync."""

    @pytest.mark.asyncio
    async def test_run_updates_status_and_logs(self, settings, backend, accounts):
        orders = [make_order(order_id="o1", username="alice"), make_order(order_id="o2", username="bob")]
        service, shipstation = build_service(settings, backend, accounts, orders=orders)
        progress = []

        result = await service.run_order_sync(["main"], on_progress=progress.append)

        assert result.created == 2
        assert [order.id for order in shipstation.created] == ["o1", "o2"]
        assert progress[-1].phase is ProgressPhase.COMPLETE

        state = service.get_status()
        assert state.status is RunStatus.COMPLETE
        assert state.run_type is RunType.ORDER_SYNC
        assert state.is_running is False
        assert service.is_running is False
        assert (state.processed, state.total, state.succeeded, state.failed) == (2, 2, 2, 0)
        assert state.finished_at is not None
        assert state.logs[0].message.startswith("Sync complete")
        assert [(a.name, a.processed, a.total) for a in state.accounts] == [("main", 2, 2)]

        data = state.to_dict()
        assert data["isRunning"] is False
        assert data["type"] == "order_sync"
        assert data["progress"] == {"total": 2, "processed": 2, "successful": 2, "failed": 0}

    @pytest.mark.asyncio
    async def test_progress_callback_is_unsubscribed_after_run(self, settings, backend, accounts):
        service, _ = build_service(settings, backend, accounts)
        progress = []

        await service.run_order_sync(["main"], on_progress=progress.append)
        seen = len(progress)
        await service.run_tracking_update(["main"])

        assert len(progress) == seen

    @pytest.mark.asyncio
    async def test_second_run_is_rejected_while_active(self, settings, backend, accounts):
        """Una segunda solicitud se rechaza sin modificar el estado de la corrida activa."""
        gate = asyncio.Event()
        service, _ = build_service(settings, backend, accounts, orders=[make_order(order_id="o1")], gate=gate)

        running = asyncio.create_task(service.run_order_sync(["main"]))
        await asyncio.sleep(0)
        before = service.get_status()

        with pytest.raises(SyncAlreadyRunningException) as exc_info:
            await service.run_tracking_update(["main"])

        assert exc_info.value.running == "order_sync"
        assert service.get_status() is before
        assert service.is_running is True

        gate.set()
        await running

        assert service.is_running is False
        await service.run_tracking_update(["main"])
        assert service.get_status().run_type is RunType.TRACKING_UPDATE

    @pytest.mark.asyncio
    async def test_setup_failure_publishes_error_and_reraises(self, settings, backend, accounts):
        """Si la corrida no puede prepararse se publica un evento de error y se relanza."""
        loader = MagicMock(side_effect=ConfigurationException("Accounts file not found: accounts.json"))
        service, _ = build_service(settings, backend, accounts, accounts_loader=loader)
        progress = []

        with pytest.raises(ConfigurationException):
            await service.run_order_sync(on_progress=progress.append)

        assert [event.phase for event in progress] == [ProgressPhase.ERROR]
        state = service.get_status()
        assert state.status is RunStatus.ERROR
        assert state.logs[0].level == "error"
        assert state.logs[0].message == "order_sync failed: Accounts file not found: accounts.json"
        assert service.is_running is False


class TestRunTrackingUpdate:
    """Tests para SyncService.run_tracking_update."""

    @pytest.mark.asyncio
    async def test_empty_batch_completes(self, settings, backend, accounts):
        service, _ = build_service(settings, backend, accounts)

        result = await service.run_tracking_update()

        assert result.processed == 0
        assert [account.name for account in result.accounts] == ["main", "second"]
        state = service.get_status()
        assert state.status is RunStatus.COMPLETE
        assert state.run_type is RunType.TRACKING_UPDATE


class TestStatusLogs:
    """Tests de la lista de logs del estado."""

    def _publish(self, service, message, level="info"):
        service._on_event(
            ProgressEvent(
                phase=ProgressPhase.FETCH,
                run_type=RunType.ORDER_SYNC,
                message=message,
                level=level,
                log_only=True,
            )
        )

    def test_repeated_messages_are_deduplicated(self, settings, backend, accounts):
        service, _ = build_service(settings, backend, accounts)

        self._publish(service, "Fetched 10 orders from Whatnot")
        self._publish(service, "Fetched 10 orders from Whatnot")

        assert [entry.message for entry in service.get_status().logs] == ["Fetched 10 orders from Whatnot"]

    def test_logs_are_newest_first_and_capped(self, settings, backend, accounts):
        capped = settings.model_copy(update={"MAX_STATUS_LOGS": 2})
        service, _ = build_service(capped, backend, accounts)

        for index in range(3):
            self._publish(service, f"message {index}")

        assert [entry.message for entry in service.get_status().logs] == ["message 2", "message 1"]

    def test_log_only_events_change_status_but_not_counters(self, settings, backend, accounts):
        service, _ = build_service(settings, backend, accounts)

        self._publish(service, "Fetched 10 orders from Whatnot")

        state = service.get_status()
        assert state.status is RunStatus.FETCHING
        assert state.total == 0
        assert state.accounts == ()
