from __future__ import annotations

import asyncio
import logging

import pytest

from resmand.notifier import ChangeNotifier
from resmand.state.events import ChangeEvent


def test_notify_reaches_every_subscriber_with_increasing_serials() -> None:
    notifier = ChangeNotifier()
    first: list[ChangeEvent] = []
    second: list[ChangeEvent] = []
    notifier.subscribe(first.append)
    notifier.subscribe(second.append)

    notifier.notify()
    notifier.notify()

    assert [e.serial for e in first] == [1, 2]
    assert [e.serial for e in second] == [1, 2]


def test_failing_subscriber_is_logged_and_others_still_notified(caplog: pytest.LogCaptureFixture) -> None:
    notifier = ChangeNotifier()
    received: list[ChangeEvent] = []

    def _broken(_event: ChangeEvent) -> None:
        raise ConnectionError("bus gone")

    notifier.subscribe(_broken)
    notifier.subscribe(received.append)

    with caplog.at_level(logging.ERROR, logger="resmand.notifier"):
        event = notifier.notify()

    assert received == [event]
    assert "delivery failed" in caplog.text


def test_unsubscribe_stops_delivery() -> None:
    notifier = ChangeNotifier()
    received: list[ChangeEvent] = []
    unsubscribe = notifier.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    notifier.notify()

    assert received == []
    assert notifier.subscriber_count == 0


@pytest.mark.asyncio
async def test_queue_subscriber_receives_events_asynchronously() -> None:
    notifier = ChangeNotifier()
    queue, unsubscribe = notifier.subscribe_queue()

    event = notifier.notify()
    assert queue.empty()

    received = await asyncio.wait_for(queue.get(), timeout=1.0)
    assert received == event
    unsubscribe()


@pytest.mark.asyncio
async def test_full_queue_drops_event(caplog: pytest.LogCaptureFixture) -> None:
    notifier = ChangeNotifier()
    queue, _ = notifier.subscribe_queue(maxsize=1)

    with caplog.at_level(logging.WARNING, logger="resmand.notifier"):
        notifier.notify()
        notifier.notify()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

    assert queue.qsize() == 1
    assert "slow subscriber" in caplog.text
