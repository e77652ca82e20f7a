"""Tests unitarios para la carga de cuentas."""

import json

import pytest

from ordersync.core.accounts import Account, enabled_accounts, find_account, load_accounts
from ordersync.utils.error_handler import ConfigurationException


@pytest.fixture
def accounts_file(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text(
        json.dumps(
            {
                "accounts": [
                    {"name": "main", "enabled": True, "whatnotToken": "t1", "shipstationStoreId": 123},
                    {"name": "paused", "enabled": False, "whatnotToken": "t2", "shipstationStoreId": "456"},
                    {"name": " spaced ", "whatnotToken": "t3", "startAt": "2024-05-01T00:00:00Z"},
                ]
            }
        )
    )
    return path


class TestLoadAccounts:
    """Tests para load_accounts."""

    def test_reads_camel_case_fields(self, accounts_file):
        accounts = load_accounts(accounts_file)

        assert [account.name for account in accounts] == ["main", "paused", "spaced"]
        assert accounts[0].whatnot_token == "t1"
        assert accounts[0].shipstation_store_id == "123"
        assert accounts[2].enabled is True
        assert accounts[2].shipstation_store_id is None
        assert accounts[2].start_at == "2024-05-01T00:00:00Z"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationException, match="Accounts file not found"):
            load_accounts(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "accounts.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationException):
            load_accounts(path)

    def test_accounts_key_is_required(self, tmp_path):
        path = tmp_path / "accounts.json"
        path.write_text(json.dumps([{"name": "main"}]))

        with pytest.raises(ConfigurationException, match="'accounts' list"):
            load_accounts(path)

    def test_blank_name_is_rejected(self, tmp_path):
        path = tmp_path / "accounts.json"
        path.write_text(json.dumps({"accounts": [{"name": "  "}]}))

        with pytest.raises(ConfigurationException, match="Invalid account entry"):
            load_accounts(path)


class TestAccountSelection:
    """Tests para enabled_accounts y find_account."""

    def test_enabled_accounts(self, accounts_file):
        assert [account.name for account in enabled_accounts(load_accounts(accounts_file))] == ["main", "spaced"]

    def test_find_account(self, accounts_file):
        assert find_account(load_accounts(accounts_file), "paused").enabled is False

    def test_find_unknown_account(self):
        with pytest.raises(ConfigurationException, match="Unknown account: ghost"):
            find_account([Account(name="main")], "ghost")
