"""
Progress channel shared by the order-sync and tracking-update runs.

Orchestrators publish ``ProgressEvent`` values to a ``ProgressBus``;
subscribers (run state, CLI, log sink) consume them independently.
"""

import asyncio
import inspect
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ProgressPhase(str, Enum):
    FETCH = "fetch"
    VALIDATION = "validation"
    CREATION_START = "creation_start"
    CREATION = "creation"
    FILTERING = "filtering"
    UPDATING = "updating"
    ACCOUNT_COMPLETE = "account_complete"
    COMPLETE = "complete"
    ERROR = "error"


class RunType(str, Enum):
    ORDER_SYNC = "order_sync"
    TRACKING_UPDATE = "tracking_update"


@dataclass(frozen=True)
class ProgressEvent:
    """
    One progress update.

    ``processed``/``total``/``succeeded``/``failed`` are aggregated over
    the whole run; the ``account_*`` counters cover the current account.
    ``succeeded`` counts created orders (order sync) or updated
    shipments (tracking update). Log-only events carry a message but
    must not move a progress bar.
    """

    phase: ProgressPhase
    run_type: RunType
    account: Optional[str] = None
    processed: int = 0
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    invalid: int = 0
    already_tracked: int = 0
    account_processed: int = 0
    account_total: int = 0
    message: Optional[str] = None
    level: str = "info"
    log_only: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.phase in (ProgressPhase.COMPLETE, ProgressPhase.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "runType": self.run_type.value,
            "account": self.account,
            "processed": self.processed,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "invalid": self.invalid,
            "alreadyTracked": self.already_tracked,
            "accountProcessed": self.account_processed,
            "accountTotal": self.account_total,
            "message": self.message,
            "level": self.level,
            "logOnly": self.log_only,
            "timestamp": self.timestamp.isoformat(),
        }


ProgressCallback = Callable[[ProgressEvent], Any]


class ProgressBus:
    """
    Fan-out of progress events to callbacks and bounded queues.

    Callback failures are logged and never interrupt the publishing run.
    A queue subscriber that falls behind loses its oldest events.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._callbacks: List[ProgressCallback] = []
        self._queues: List[asyncio.Queue] = []

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """
        Register a callback (sync or async).

        Returns:
            Callable: Function removing the subscription
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    @asynccontextmanager
    async def stream(self, maxsize: Optional[int] = None) -> AsyncIterator[asyncio.Queue]:
        """Subscribe a bounded queue for the duration of the context."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or self.queue_size)
        self._queues.append(queue)
        try:
            yield queue
        finally:
            self._queues.remove(queue)

    async def publish(self, event: ProgressEvent) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Progress subscriber failed on {event.phase.value} event: {e}", exc_info=True)

        for queue in list(self._queues):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)


class LogDeduplicator:
    """
    Sliding-window suppression of repeated status log lines.

    A (message, level) pair seen less than ``window_seconds`` ago is
    suppressed. Entries are kept in arrival order, so expiry pops from
    the front; the map never holds more than ``capacity`` entries.
    """

    def __init__(
        self,
        window_seconds: float = 5.0,
        capacity: int = 1000,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.window_seconds = window_seconds
        self.capacity = capacity
        self._clock = clock or time.monotonic
        self._seen: "OrderedDict[Tuple[str, str], float]" = OrderedDict()

    def _expire(self, now: float) -> None:
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if now - seen_at < self.window_seconds:
                break
            self._seen.popitem(last=False)

    def should_emit(self, message: str, level: str = "info") -> bool:
        """Record the pair and tell whether it should be emitted."""
        now = self._clock()
        self._expire(now)

        key = (message, level)
        if key in self._seen:
            return False

        self._seen[key] = now
        while len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return True

    def __len__(self) -> int:
        return len(self._seen)
