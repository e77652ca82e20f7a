"""Tests unitarios para utilidades de formato."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from ordersync.utils.formatting import cents_to_dollars, format_stream_id, format_usd, parse_datetime, to_iso


class TestFormatStreamId:
    """Tests para format_stream_id."""

    @pytest.mark.parametrize(
        "timestamp,expected",
        [
            ("2024-03-15T23:10:00Z", "240315-07p"),
            ("2024-03-15T04:00:00Z", "240315-12a"),
            ("2024-03-15T16:30:00Z", "240315-12p"),
            ("2024-01-10T14:05:00Z", "240110-09a"),
        ],
    )
    def test_uses_stream_timezone_and_12_hour_clock(self, timestamp, expected):
        """Debe usar la zona del stream y reloj de 12 horas."""
        assert format_stream_id(timestamp, "America/New_York") == expected

    def test_defaults_to_utc(self):
        """Sin zona horaria se usa UTC."""
        assert format_stream_id("2024-03-15T23:10:00Z") == "240315-11p"


class TestMoneyFormatting:
    """Tests para cents_to_dollars y format_usd."""

    def test_cents_to_dollars(self):
        assert cents_to_dollars(1234) == Decimal("12.34")
        assert cents_to_dollars(None) == Decimal("0.00")

    def test_format_usd(self):
        assert format_usd(123450) == "$1,234.50"
        assert format_usd(0) == "$0.00"
        assert format_usd(-250) == "-$2.50"


class TestParseDatetime:
    """Tests para parse_datetime y to_iso."""

    def test_parses_z_suffix(self):
        parsed = parse_datetime("2024-03-15T23:10:00Z")

        assert parsed == datetime(2024, 3, 15, 23, 10, tzinfo=timezone.utc)

    def test_naive_value_takes_default_timezone(self):
        """ShipStation envía fechas sin zona en hora del Pacífico."""
        parsed = parse_datetime("2024-03-15T10:00:00.0000000", "America/Los_Angeles")

        assert parsed.astimezone(timezone.utc) == datetime(2024, 3, 15, 17, 0, tzinfo=timezone.utc)

    def test_empty_value_returns_none(self):
        assert parse_datetime("") is None
        assert parse_datetime(None) is None

    def test_to_iso_uses_utc_with_milliseconds(self):
        value = datetime(2024, 3, 15, 23, 10, 5, 123456, tzinfo=timezone.utc)

        assert to_iso(value) == "2024-03-15T23:10:05.123Z"
