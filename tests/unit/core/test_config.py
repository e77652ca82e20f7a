"""Tests unitarios para Settings y la configuración de logging."""

import logging

import pytest
from pydantic import ValidationError

from ordersync.core.config import Settings, validate_required_settings
from ordersync.core.logging_config import LogContext, get_logging_configuration
from ordersync.utils.error_handler import ConfigurationException, log_error


class TestSettings:
    """Tests para Settings."""

    def test_defaults(self, settings):
        assert settings.SHIPSTATION_MAX_RETRIES == 3
        assert settings.SHIPSTATION_TIMEZONE == "America/Los_Angeles"
        assert settings.DEFAULT_COURIER == "usps"
        assert settings.shipstation_requests_per_second == pytest.approx(0.66)

    def test_values_from_environment(self, monkeypatch):
        monkeypatch.setenv("SHIPSTATION_MAX_RETRIES", "5")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.SHIPSTATION_MAX_RETRIES == 5
        assert settings.LOG_LEVEL == "DEBUG"

    def test_unknown_timezone_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, STREAM_TIMEZONE="Mars/Olympus")

    def test_initial_sync_date_must_be_iso(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, WHATNOT_INITIAL_SYNC_DATE="yesterday")

    def test_blank_initial_sync_date_is_none(self):
        assert Settings(_env_file=None, WHATNOT_INITIAL_SYNC_DATE=" ").WHATNOT_INITIAL_SYNC_DATE is None

    def test_required_credentials(self, settings):
        assert validate_required_settings(settings) is True

        with pytest.raises(ConfigurationException, match="SHIPSTATION_API_SECRET"):
            validate_required_settings(settings.model_copy(update={"SHIPSTATION_API_SECRET": ""}))

    def test_whatnot_headers(self, settings):
        headers = settings.get_whatnot_headers("token-main")

        assert headers["Authorization"] == "Bearer token-main"
        assert headers["Content-Type"] == "application/json"


class TestLoggingConfiguration:
    """Tests para get_logging_configuration y LogContext."""

    def test_console_only_without_log_file(self, settings):
        config = get_logging_configuration(settings, "debug")

        assert config["root"] == {"level": "DEBUG", "handlers": ["console"]}

    def test_rotating_files_with_log_file(self, settings, tmp_path):
        with_file = settings.model_copy(update={"LOG_FILE_PATH": str(tmp_path / "ordersync.log")})

        config = get_logging_configuration(with_file)

        assert config["root"]["handlers"] == ["console", "file", "error_file"]
        assert config["handlers"]["error_file"]["filename"].endswith("ordersync_errors.log")

    def test_log_context_adds_account_to_records(self, caplog):
        logger = logging.getLogger("ordersync.tests.context")

        with caplog.at_level(logging.INFO, logger="ordersync.tests.context"):
            with LogContext(account="main", run_type="order_sync"):
                logger.info("inside")
            logger.info("outside")

        inside, outside = caplog.records
        assert inside.account == "main"
        assert inside.run_type == "order_sync"
        assert not hasattr(outside, "account")

    def test_log_error_inside_account_context(self, caplog):
        """log_error con contexto propio no choca con los atributos de LogContext."""
        with caplog.at_level(logging.ERROR, logger="ordersync.utils.error_handler"):
            with LogContext(account="main", run_type="order_sync"):
                log_error(ConfigurationException("boom"), context={"account_name": "main", "operation": "sync_orders"})

        record = caplog.records[-1]
        assert record.account == "main"
        assert record.account_name == "main"
        assert record.error_code == "CONFIGURATION_ERROR"
