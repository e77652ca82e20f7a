"""Tests unitarios para RetryHandler y AsyncRateLimiter."""

from unittest.mock import AsyncMock

import pytest

from ordersync.utils.error_handler import AuthenticationException, RateLimitException, WhatnotAPIException
from ordersync.utils.rate_limiter import AsyncRateLimiter
from ordersync.utils.retry_handler import (
    RetryHandler,
    RetryPolicy,
    create_shipstation_retry_handler,
    create_whatnot_retry_handler,
)


class TestRetryPolicy:
    """Tests para RetryPolicy."""

    def test_rate_limit_delay_uses_retry_after(self):
        """El delay de un 429 es el Retry-After del servidor."""
        policy = RetryPolicy(max_attempts=4, max_delay=300, jitter=False, retry_on=[RateLimitException])

        assert policy.calculate_delay(1, RateLimitException("slow down", retry_after=2)) == 2

    def test_rate_limit_delay_is_capped(self):
        policy = RetryPolicy(max_attempts=4, max_delay=30, jitter=False, retry_on=[RateLimitException])

        assert policy.calculate_delay(1, RateLimitException("slow down", retry_after=500)) == 30

    def test_stop_on_wins(self):
        """Las excepciones de stop_on nunca se reintentan."""
        policy = RetryPolicy(max_attempts=4, retry_on=[Exception], stop_on=[AuthenticationException])

        assert policy.should_retry(AuthenticationException("bad", service="shipstation"), 1) is False

    def test_non_retryable_app_exception(self):
        """Un WhatnotAPIException 4xx no es reintentable."""
        policy = RetryPolicy(max_attempts=3, retry_on=[WhatnotAPIException])

        assert policy.should_retry(WhatnotAPIException("bad", status_code=400), 1) is False
        assert policy.should_retry(WhatnotAPIException("down", status_code=503), 1) is True


class TestRetryHandler:
    """Tests para RetryHandler.execute."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self, settings):
        """Dos 429 y luego éxito: dos esperas de Retry-After."""
        sleep = AsyncMock()
        handler = create_shipstation_retry_handler(settings, sleep=sleep)
        func = AsyncMock(
            side_effect=[
                RateLimitException("slow down", retry_after=2),
                RateLimitException("slow down", retry_after=2),
                {"orderId": 1},
            ]
        )

        result = await handler.execute(func, "payload")

        assert result == {"orderId": 1}
        assert func.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [2, 2]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, settings):
        """Con 429 permanente falla tras SHIPSTATION_MAX_RETRIES + 1 intentos."""
        sleep = AsyncMock()
        handler = create_shipstation_retry_handler(settings, sleep=sleep)
        func = AsyncMock(side_effect=RateLimitException("slow down", retry_after=1))

        with pytest.raises(RateLimitException):
            await handler.execute(func)

        assert func.await_count == settings.SHIPSTATION_MAX_RETRIES + 1
        assert sleep.await_count == settings.SHIPSTATION_MAX_RETRIES

    @pytest.mark.asyncio
    async def test_authentication_error_is_not_retried(self, settings):
        sleep = AsyncMock()
        handler = create_shipstation_retry_handler(settings, sleep=sleep)
        func = AsyncMock(side_effect=AuthenticationException("bad credentials", service="shipstation"))

        with pytest.raises(AuthenticationException):
            await handler.execute(func)

        assert func.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_whatnot_handler_retries_server_errors(self, settings):
        sleep = AsyncMock()
        handler = create_whatnot_retry_handler(settings, sleep=sleep)
        func = AsyncMock(side_effect=[WhatnotAPIException("down", status_code=502), {"data": {}}])

        assert await handler.execute(func) == {"data": {}}
        assert handler.get_metrics()["total_retries"] == 1

    @pytest.mark.asyncio
    async def test_custom_handler_without_retry(self):
        handler = RetryHandler("noop", RetryPolicy(max_attempts=1), sleep=AsyncMock())
        func = AsyncMock(side_effect=ValueError("boom"))

        with pytest.raises(ValueError):
            await handler.execute(func)


class TestAsyncRateLimiter:
    """Tests para el token bucket."""

    @pytest.mark.asyncio
    async def test_first_request_does_not_wait(self, fake_clock):
        limiter = AsyncRateLimiter(rate=0.5, burst=1, clock=fake_clock, sleep=fake_clock.sleep)

        assert await limiter.acquire() == 0
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_paces_requests_at_configured_rate(self, fake_clock):
        """Tras el burst cada request espera 1/rate segundos."""
        limiter = AsyncRateLimiter(rate=0.5, burst=1, clock=fake_clock, sleep=fake_clock.sleep)

        await limiter.acquire()
        waited = await limiter.acquire()

        assert waited == pytest.approx(2.0)
        assert fake_clock.now == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_tokens_refill_over_time(self, fake_clock):
        limiter = AsyncRateLimiter(rate=1.0, burst=2, clock=fake_clock, sleep=fake_clock.sleep)

        await limiter.acquire()
        await limiter.acquire()
        fake_clock.now += 5

        assert limiter.available_tokens == pytest.approx(2.0)

    def test_shipstation_rate_uses_slowest_limit(self, settings):
        """40 req/min es más lento que 0.66 req/s."""
        limiter = AsyncRateLimiter.for_shipstation(settings)

        assert limiter.rate == pytest.approx(min(40 / 60, 0.66))

    def test_invalid_rate(self):
        with pytest.raises(ValueError):
            AsyncRateLimiter(rate=0)
