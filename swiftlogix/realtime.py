"""
Realtime change feed primitives.

A Subscription is a scoped resource: whoever opens one must close it, either
explicitly or by using it as an async context manager. The open count is
exported as a gauge so leaked subscriptions show up in /metrics.
"""

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from swiftlogix.metrics import realtime_subscriptions_open

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """A row change notification: table name, INSERT/UPDATE, and the new row."""
    table: str
    type: str
    record: dict = field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], None]
Closer = Callable[[], Union[None, Awaitable[None]]]


class Subscription:
    """Handle for one open change feed."""

    def __init__(self, description: str, closer: Closer):
        self.description = description
        self._closer: Optional[Closer] = closer
        realtime_subscriptions_open.inc()
        logger.info(f"Realtime subscription opened: {description}")

    @property
    def closed(self) -> bool:
        return self._closer is None

    async def close(self) -> None:
        """Release the feed. Safe to call more than once."""
        if self._closer is None:
            return
        closer, self._closer = self._closer, None
        realtime_subscriptions_open.dec()
        result = closer()
        if inspect.isawaitable(result):
            await result
        logger.info(f"Realtime subscription closed: {self.description}")

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class RealtimeHub:
    """
    In-process fan-out of row changes, used by the local backend.

    Listeners are keyed by (table, column, value) and receive every change
    whose record carries that column value.
    """

    def __init__(self):
        self._listeners: dict[tuple[str, str, Any], list[ChangeCallback]] = defaultdict(list)

    def listen(self, table: str, column: str, value: Any, callback: ChangeCallback) -> Subscription:
        key = (table, column, value)
        self._listeners[key].append(callback)

        def remove() -> None:
            callbacks = self._listeners.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._listeners.pop(key, None)

        return Subscription(f"{table}:{column}=eq.{value}", remove)

    def listener_count(self) -> int:
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def publish(self, table: str, change_type: str, record: dict) -> None:
        event = ChangeEvent(table=table, type=change_type, record=dict(record))
        for (listen_table, column, value), callbacks in list(self._listeners.items()):
            if listen_table != table or record.get(column) != value:
                continue
            for callback in list(callbacks):
                try:
                    callback(event)
                except Exception:
                    # Keep delivering to the remaining listeners
                    logger.exception(f"Realtime listener failed for {table} {change_type}")
