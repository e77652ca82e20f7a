"""
Sistema de manejo de reintentos.

Este módulo implementa la política de reintentos de las llamadas a
ShipStation (solo HTTP 429, esperando el Retry-After del servidor) y a
Whatnot (errores de red, con backoff exponencial acotado).
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import aiohttp

from ordersync.core.config import Settings, get_settings
from ordersync.utils.error_handler import (
    AppException,
    AuthenticationException,
    ConfigurationException,
    RateLimitException,
    WhatnotAPIException,
)

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class RetryPolicy:
    """
    Política de reintentos configurable.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retry_on: Optional[List[Type[Exception]]] = None,
        stop_on: Optional[List[Type[Exception]]] = None,
    ):
        """
        Inicializa la política de reintentos.

        Args:
            max_attempts: Número máximo de intentos (incluye el primero)
            base_delay: Delay base en segundos
            max_delay: Delay máximo en segundos
            exponential_base: Base para backoff exponencial
            jitter: Si agregar jitter aleatorio
            retry_on: Excepciones en las que reintentar
            stop_on: Excepciones que detienen inmediatamente
        """
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on or [AppException]
        self.stop_on = stop_on or []

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """
        Determina si debe reintentar la operación.

        Args:
            exception: Excepción que ocurrió
            attempt: Número de intento actual (desde 1)

        Returns:
            bool: True si debe reintentar
        """
        if attempt >= self.max_attempts:
            return False

        for stop_exc in self.stop_on:
            if isinstance(exception, stop_exc):
                return False

        for retry_exc in self.retry_on:
            if isinstance(exception, retry_exc):
                if isinstance(exception, AppException):
                    return exception.is_retryable
                return True

        return False

    def calculate_delay(self, attempt: int, exception: Optional[Exception] = None) -> float:
        """
        Calcula el delay antes del siguiente intento.

        Args:
            attempt: Número de intento
            exception: Excepción que causó el retry (opcional)

        Returns:
            float: Segundos a esperar
        """
        # Delay indicado por el servidor para rate limiting
        if isinstance(exception, RateLimitException) and exception.retry_after is not None:
            return max(min(float(exception.retry_after), self.max_delay), 0)

        delay = self.base_delay * (self.exponential_base ** (attempt - 1))

        if self.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)

        return max(delay, 0)


class RetryHandler:
    """
    Ejecuta corrutinas aplicando una RetryPolicy.
    """

    def __init__(
        self,
        name: str,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """
        Inicializa el manejador de reintentos.

        Args:
            name: Nombre identificativo del handler
            retry_policy: Política de reintentos
            sleep: Función de espera (inyectable en tests)
        """
        self.name = name
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

        self.metrics = {
            "total_attempts": 0,
            "total_successes": 0,
            "total_failures": 0,
            "total_retries": 0,
        }

    async def execute(self, func: Callable, *args, context: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """
        Ejecuta una función asíncrona con reintentos.

        Args:
            func: Función a ejecutar
            *args: Argumentos posicionales
            context: Contexto adicional para logging
            **kwargs: Argumentos con nombre

        Returns:
            Any: Resultado de la función

        Raises:
            Exception: La última excepción si todos los reintentos fallan
        """
        context = context or {}
        start_time = time.monotonic()
        last_exception: Optional[Exception] = None
        attempts = 0

        for attempt in range(1, self.retry_policy.max_attempts + 1):
            attempts = attempt
            self.metrics["total_attempts"] += 1

            try:
                logger.debug(
                    f"Executing {self.name} - Attempt {attempt}/{self.retry_policy.max_attempts}",
                    extra={"context": context},
                )
                result = await func(*args, **kwargs)
                self.metrics["total_successes"] += 1

                if attempt > 1:
                    logger.info(
                        f"{self.name} succeeded on attempt {attempt} after {time.monotonic() - start_time:.2f}s",
                        extra={"context": context},
                    )
                return result

            except Exception as e:
                last_exception = e
                self.metrics["total_failures"] += 1

                if not self.retry_policy.should_retry(e, attempt):
                    break

                delay = self.retry_policy.calculate_delay(attempt, e)
                self.metrics["total_retries"] += 1

                logger.warning(
                    f"Retrying {self.name} in {delay:.2f}s - "
                    f"Attempt {attempt + 1}/{self.retry_policy.max_attempts} ({type(e).__name__})",
                    extra={"delay": delay, "context": context},
                )

                await self._sleep(delay)

        if attempts > 1:
            logger.error(
                f"All retry attempts failed for {self.name} after {attempts} attempts",
                extra={"last_exception": str(last_exception), "context": context},
            )

        raise last_exception  # type: ignore[misc]

    def get_metrics(self) -> Dict[str, Any]:
        """
        Obtiene métricas del handler.

        Returns:
            Dict: Métricas actuales
        """
        return {**self.metrics, "handler_name": self.name}


# === FACTORY FUNCTIONS ===


def create_shipstation_retry_handler(
    settings: Optional[Settings] = None, sleep: Optional[SleepFunc] = None
) -> RetryHandler:
    """
    Crea un handler para ShipStation.

    Solo reintenta HTTP 429 esperando el Retry-After del servidor;
    las credenciales rechazadas fallan de inmediato.

    Returns:
        RetryHandler: Handler configurado para ShipStation
    """
    settings = settings or get_settings()

    retry_policy = RetryPolicy(
        max_attempts=settings.SHIPSTATION_MAX_RETRIES + 1,
        base_delay=float(settings.SHIPSTATION_DEFAULT_RETRY_AFTER),
        max_delay=max(float(settings.SHIPSTATION_DEFAULT_RETRY_AFTER), 300.0),
        jitter=False,
        retry_on=[RateLimitException],
        stop_on=[AuthenticationException, ConfigurationException],
    )

    return RetryHandler(name="shipstation_api", retry_policy=retry_policy, sleep=sleep)


def create_whatnot_retry_handler(
    settings: Optional[Settings] = None, sleep: Optional[SleepFunc] = None
) -> RetryHandler:
    """
    Crea un handler para consultas GraphQL a Whatnot.

    Reintenta errores de red y respuestas 5xx con backoff exponencial.

    Returns:
        RetryHandler: Handler configurado para Whatnot
    """
    settings = settings or get_settings()

    retry_policy = RetryPolicy(
        max_attempts=settings.WHATNOT_MAX_RETRIES,
        base_delay=1.0,
        max_delay=10.0,
        exponential_base=2.0,
        jitter=True,
        retry_on=[aiohttp.ClientError, asyncio.TimeoutError, WhatnotAPIException],
        stop_on=[ConfigurationException],
    )

    return RetryHandler(name="whatnot_api", retry_policy=retry_policy, sleep=sleep)
