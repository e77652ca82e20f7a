"""
Rate limiter asíncrono tipo token bucket.

Limita el ritmo de requests hacia ShipStation (40 req/min documentados,
~0.66 req/s sostenidos). Es independiente de la lógica de reintentos:
bloquea la request en curso hasta que haya un token disponible.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from ordersync.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class AsyncRateLimiter:
    """
    Token bucket asíncrono.

    Args:
        rate: Tokens por segundo
        burst: Capacidad máxima del bucket
        clock: Reloj monotónico (inyectable en tests)
        sleep: Función de espera (inyectable en tests)
    """

    def __init__(
        self,
        rate: float,
        burst: int = 1,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.rate = rate
        self.burst = burst
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(burst)
        self._updated_at = self._clock()
        self._lock = asyncio.Lock()

    @classmethod
    def for_shipstation(cls, settings: Optional[Settings] = None, **kwargs) -> "AsyncRateLimiter":
        """Crea el limiter con la tasa configurada para ShipStation."""
        settings = settings or get_settings()
        return cls(
            rate=settings.shipstation_requests_per_second,
            burst=settings.SHIPSTATION_RATE_LIMIT_BURST,
            **kwargs,
        )

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated_at = now

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self) -> float:
        """
        Espera hasta obtener un token.

        Returns:
            float: Segundos esperados
        """
        waited = 0.0
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return waited

                wait_time = (1.0 - self._tokens) / self.rate
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s for next token")
                await self._sleep(wait_time)
                waited += wait_time

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False
