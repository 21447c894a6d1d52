"""
Unit tests for the worker event bus.

Verifies per-subscriber ordering, kind filtering, bounded queues that
drop the oldest event, and iteration ending on close.
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio

import pytest

from collab.supervisor.events import EventBus, EventKind, WorkerEvent


def _event(kind: EventKind = EventKind.OUTPUT, n: int = 0) -> WorkerEvent:
    return WorkerEvent(kind=kind, worker_id="w-1", handle="alice", data={"n": n})


class TestWorkerEvent:
    def test_to_dict(self):
        event = WorkerEvent(
            kind=EventKind.EXIT, worker_id="w-1", handle="alice", data={"code": 0},
        )
        data = event.to_dict()
        assert data["type"] == "worker.exit"
        assert data["worker_id"] == "w-1"
        assert data["handle"] == "alice"
        assert data["data"] == {"code": 0}
        assert data["timestamp"] == event.timestamp.isoformat()


class TestEventBus:
    @pytest.mark.asyncio
    async def test_events_arrive_in_publish_order(self):
        bus = EventBus()
        sub = bus.subscribe()
        for n in range(5):
            bus.publish(_event(n=n))

        received = [(await sub.get()).data["n"] for _ in range(5)]
        assert received == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_every_subscriber_gets_every_event(self):
        bus = EventBus()
        first, second = bus.subscribe(), bus.subscribe()
        bus.publish(_event(EventKind.READY))

        assert (await first.get()).kind is EventKind.READY
        assert (await second.get()).kind is EventKind.READY

    @pytest.mark.asyncio
    async def test_kind_filter(self):
        bus = EventBus()
        sub = bus.subscribe(kinds=[EventKind.EXIT, EventKind.RESULT])
        bus.publish(_event(EventKind.OUTPUT))
        bus.publish(_event(EventKind.RESULT))
        bus.publish(_event(EventKind.ERROR))
        bus.publish(_event(EventKind.EXIT))

        assert [e.kind for e in sub.drain()] == [EventKind.RESULT, EventKind.EXIT]

    def test_publish_without_subscribers(self):
        bus = EventBus()
        bus.publish(_event())
        assert bus.subscriber_count == 0

    def test_full_queue_drops_oldest(self):
        bus = EventBus()
        sub = bus.subscribe(maxsize=3)
        for n in range(5):
            bus.publish(_event(n=n))

        assert [e.data["n"] for e in sub.drain()] == [2, 3, 4]
        assert sub.dropped == 2

    def test_slow_subscriber_does_not_affect_others(self):
        bus = EventBus()
        slow = bus.subscribe(maxsize=1)
        fast = bus.subscribe()
        for n in range(3):
            bus.publish(_event(n=n))

        assert [e.data["n"] for e in fast.drain()] == [0, 1, 2]
        assert [e.data["n"] for e in slow.drain()] == [2]

    @pytest.mark.asyncio
    async def test_iteration_ends_when_bus_closes(self):
        bus = EventBus()
        sub = bus.subscribe()
        bus.publish(_event(n=1))
        bus.publish(_event(n=2))
        bus.close()

        received = [e.data["n"] async for e in sub]
        assert received == [1, 2]
        assert sub.closed
        assert await sub.get() is None

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_consumer(self):
        bus = EventBus()
        sub = bus.subscribe()
        waiter = asyncio.create_task(sub.get())
        await asyncio.sleep(0)

        sub.close()

        assert await asyncio.wait_for(waiter, timeout=1.0) is None

    def test_close_unsubscribes(self):
        bus = EventBus()
        sub = bus.subscribe()
        sub.close()
        sub.close()
        assert bus.subscriber_count == 0

        bus.publish(_event())
        assert sub.drain() == []

    def test_publish_after_close_is_dropped(self):
        bus = EventBus()
        sub = bus.subscribe()
        bus.close()
        bus.publish(_event())
        assert sub.drain() == []

    @pytest.mark.asyncio
    async def test_subscribe_after_close_is_already_closed(self):
        bus = EventBus()
        bus.close()
        sub = bus.subscribe()
        assert [e async for e in sub] == []
