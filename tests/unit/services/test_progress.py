"""Tests unitarios para ProgressBus y LogDeduplicator."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from ordersync.services.progress import LogDeduplicator, ProgressBus, ProgressEvent, ProgressPhase, RunType
from tests.fakes import FakeClock


def event(phase=ProgressPhase.UPDATING, processed=0, message=None):
    return ProgressEvent(phase=phase, run_type=RunType.TRACKING_UPDATE, processed=processed, message=message)


class TestProgressEvent:
    """Tests para ProgressEvent."""

    def test_terminal_phases(self):
        assert event(ProgressPhase.COMPLETE).is_terminal
        assert event(ProgressPhase.ERROR).is_terminal
        assert not event(ProgressPhase.ACCOUNT_COMPLETE).is_terminal

    def test_to_dict_uses_camel_case(self):
        data = event(processed=3, message="Processed 3/5 shipments").to_dict()

        assert data["phase"] == "updating"
        assert data["runType"] == "tracking_update"
        assert data["processed"] == 3
        assert data["alreadyTracked"] == 0
        assert data["logOnly"] is False


class TestProgressBus:
    """Tests para ProgressBus."""

    @pytest.mark.asyncio
    async def test_fans_out_to_sync_and_async_callbacks(self):
        bus = ProgressBus()
        sync_callback = MagicMock()
        async_callback = AsyncMock()
        bus.subscribe(sync_callback)
        bus.subscribe(async_callback)

        published = event()
        await bus.publish(published)

        sync_callback.assert_called_once_with(published)
        async_callback.assert_awaited_once_with(published)

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = ProgressBus()
        callback = MagicMock()
        unsubscribe = bus.subscribe(callback)

        unsubscribe()
        unsubscribe()
        await bus.publish(event())

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged_and_others_still_run(self, caplog):
        """Un suscriptor que falla no interrumpe la publicación."""
        bus = ProgressBus()
        bus.subscribe(MagicMock(side_effect=RuntimeError("display broke")))
        healthy = MagicMock()
        bus.subscribe(healthy)

        with caplog.at_level(logging.ERROR, logger="ordersync.services.progress"):
            await bus.publish(event())

        healthy.assert_called_once()
        assert "display broke" in caplog.text

    @pytest.mark.asyncio
    async def test_slow_queue_drops_oldest_events(self):
        """Una cola llena descarta el evento más antiguo."""
        bus = ProgressBus()

        async with bus.stream(maxsize=2) as queue:
            for processed in range(1, 4):
                await bus.publish(event(processed=processed))

            received = [queue.get_nowait().processed, queue.get_nowait().processed]

        assert received == [2, 3]
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_stream_is_removed_on_exit(self):
        bus = ProgressBus()

        async with bus.stream() as queue:
            pass
        await bus.publish(event())

        assert queue.empty()


class TestLogDeduplicator:
    """Tests para LogDeduplicator."""

    def test_repeats_within_window_are_suppressed(self):
        clock = FakeClock()
        dedup = LogDeduplicator(window_seconds=5.0, clock=clock)

        assert dedup.should_emit("Fetched 10 orders") is True
        clock.now = 4.9
        assert dedup.should_emit("Fetched 10 orders") is False

    def test_same_message_at_other_level_is_emitted(self):
        dedup = LogDeduplicator(clock=FakeClock())

        assert dedup.should_emit("Account failed", "info") is True
        assert dedup.should_emit("Account failed", "error") is True

    def test_message_is_emitted_again_after_window(self):
        clock = FakeClock()
        dedup = LogDeduplicator(window_seconds=5.0, clock=clock)

        dedup.should_emit("Fetched 10 orders")
        clock.now = 5.0

        assert dedup.should_emit("Fetched 10 orders") is True
        assert len(dedup) == 1

    def test_capacity_is_bounded(self):
        dedup = LogDeduplicator(window_seconds=60.0, capacity=3, clock=FakeClock())

        for index in range(10):
            dedup.should_emit(f"message {index}")

        assert len(dedup) == 3
        assert dedup.should_emit("message 0") is True
