"""Fan-out of change events to subscribers.

Delivery is best-effort: a failing subscriber is logged and skipped, and
the mutation that triggered the event is never affected.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import Callable

from resmand.state.events import ChangeEvent

_logger = logging.getLogger(__name__)

Subscriber = Callable[[ChangeEvent], object]


class ChangeNotifier:
    """Publish a :class:`ChangeEvent` to every registered subscriber.

    Subscribers are called synchronously from :meth:`notify` and must not
    block; anything slow (a WebSocket send, a broker publish) should hand
    the event off to its own task or thread. :meth:`subscribe_queue` does
    exactly that for asyncio consumers.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()
        self._serials = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register *subscriber* and return a function that unregisters it."""
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def subscribe_queue(
        self,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        maxsize: int = 0,
    ) -> tuple[asyncio.Queue[ChangeEvent], Callable[[], None]]:
        """Subscribe an ``asyncio.Queue`` fed from *loop*.

        Safe to call :meth:`notify` from any thread; events are put on the
        queue through the loop. A full queue drops the event with a warning.
        """
        target_loop = loop or asyncio.get_running_loop()
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=maxsize)

        def _put(event: ChangeEvent) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                _logger.warning("Dropping change event %d for a slow subscriber", event.serial)

        def _enqueue(event: ChangeEvent) -> None:
            target_loop.call_soon_threadsafe(_put, event)

        return queue, self.subscribe(_enqueue)

    def notify(self) -> ChangeEvent:
        """Publish one change event and return it."""
        with self._lock:
            event = ChangeEvent(serial=next(self._serials))
            subscribers = list(self._subscribers)
        _logger.debug("Publishing change event %d to %d subscribers", event.serial, len(subscribers))
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception:
                _logger.exception("Change event %d delivery failed", event.serial)
        return event
