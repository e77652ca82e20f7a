"""Tests unitarios para la línea de comandos."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ordersync import cli
from ordersync.services.orders.orchestrator import AccountSyncResult, SyncResult
from ordersync.services.tracking.orchestrator import AccountTrackingResult, TrackingResult
from ordersync.utils.error_handler import ConfigurationException


@pytest.fixture
def service():
    service = MagicMock()
    service.run_order_sync = AsyncMock(return_value=SyncResult([AccountSyncResult(name="main", processed=2)]))
    service.run_tracking_update = AsyncMock(return_value=TrackingResult([AccountTrackingResult(name="main")]))
    service.close = AsyncMock()
    with patch("ordersync.cli.SyncService", return_value=service), patch("ordersync.cli.setup_logging"):
        yield service


class TestMain:
    """Tests para cli.main."""

    def test_sync_orders_with_accounts(self, service):
        exit_code = cli.main(["sync-orders", "--account", "main", "--account", "second"])

        assert exit_code == cli.EXIT_OK
        args = service.run_order_sync.await_args
        assert args.args[0] == ["main", "second"]
        assert args.kwargs["on_progress"] is cli.print_progress
        service.close.assert_awaited_once()

    def test_update_tracking_defaults_to_all_accounts(self, service):
        assert cli.main(["update-tracking"]) == cli.EXIT_OK
        assert service.run_tracking_update.await_args.args[0] is None

    def test_partial_run_exit_code(self, service):
        failed = AccountSyncResult(name="main", errors=[{"account": "main", "error": "boom"}])
        service.run_order_sync.return_value = SyncResult([failed])

        assert cli.main(["sync-orders"]) == cli.EXIT_PARTIAL

    def test_configuration_error_exit_code(self, service):
        service.run_order_sync.side_effect = ConfigurationException("Accounts file not found: accounts.json")

        assert cli.main(["sync-orders"]) == cli.EXIT_CONFIG
        service.close.assert_awaited_once()

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])
