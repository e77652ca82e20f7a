"""
Utilidades de formato: identificadores de stream, montos y fechas.
"""

from datetime import datetime, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

import pytz

TWO_PLACES = Decimal("0.01")


def _as_timezone(tz: Union[str, tzinfo, None]):
    if tz is None:
        return pytz.UTC
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def parse_datetime(value: Union[str, datetime, None], default_tz: Union[str, tzinfo, None] = None) -> Optional[datetime]:
    """
    Convierte un valor ISO-8601 en datetime con zona horaria.

    Acepta el sufijo ``Z`` y el formato ``YYYY-MM-DD HH:MM:SS``.
    Los valores sin zona horaria se interpretan en ``default_tz`` (UTC por defecto).

    Args:
        value: Fecha como string o datetime
        default_tz: Zona horaria para valores sin offset

    Returns:
        datetime | None: Fecha con zona horaria o None si value está vacío

    Raises:
        ValueError: Si el string no es una fecha válida
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        tz = _as_timezone(default_tz)
        if hasattr(tz, "localize"):
            parsed = tz.localize(parsed)
        else:
            parsed = parsed.replace(tzinfo=tz)

    return parsed


def to_iso(value: datetime) -> str:
    """Serializa un datetime a ISO-8601 en UTC con sufijo Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_stream_id(timestamp: Union[str, datetime], tz: Union[str, tzinfo, None] = None) -> str:
    """
    Genera el identificador legible de un stream: ``YYMMDD-HHa`` / ``YYMMDD-HHp``.

    La hora usa reloj de 12 horas (medianoche y mediodía son ``12``)
    en la zona horaria del stream.

    Args:
        timestamp: Fecha de creación de la primera orden del stream
        tz: Zona horaria del stream

    Returns:
        str: Identificador, por ejemplo ``240315-07p``
    """
    moment = parse_datetime(timestamp)
    local = moment.astimezone(_as_timezone(tz))

    hour12 = local.hour % 12 or 12
    suffix = "a" if local.hour < 12 else "p"

    return f"{local:%y%m%d}-{hour12:02d}{suffix}"


def cents_to_dollars(cents: Union[int, float, Decimal, None]) -> Decimal:
    """
    Convierte centavos a dólares con dos decimales.

    Args:
        cents: Monto en centavos

    Returns:
        Decimal: Monto en dólares (``Decimal("12.50")``)
    """
    value = Decimal(str(cents or 0)) / Decimal(100)
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_usd(cents: Union[int, float, Decimal, None]) -> str:
    """
    Formatea centavos como moneda USD: ``$1,234.50``.
    """
    dollars = cents_to_dollars(cents)
    sign = "-" if dollars < 0 else ""
    return f"{sign}${abs(dollars):,.2f}"
