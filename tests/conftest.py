"""Fixtures compartidos: settings aislados, backend de estado temporal y cuenta de prueba."""

import pytest

from ordersync.core.accounts import Account
from ordersync.core.config import Settings
from ordersync.services.state_store import JsonStateBackend
from tests.fakes import FakeClock


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="testing",
        LOG_FILE_PATH=None,
        SHIPSTATION_API_KEY="key",
        SHIPSTATION_API_SECRET="secret",
        SHIPSTATION_DEFAULT_RETRY_AFTER=60,
        WHATNOT_INITIAL_SYNC_DATE="2024-01-01T00:00:00Z",
        WHATNOT_PAGE_DELAY_SECONDS=0,
        STATE_DIR=str(tmp_path / "state"),
        ACCOUNTS_FILE=str(tmp_path / "accounts.json"),
    )


@pytest.fixture
def backend(tmp_path) -> JsonStateBackend:
    return JsonStateBackend(tmp_path / "state")


@pytest.fixture
def account() -> Account:
    return Account(name="main", whatnot_token="token-main", shipstation_store_id="123")


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
