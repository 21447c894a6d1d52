"""
Worker lifecycle events and the per-subscriber event bus.
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from collab.time_utils import now_utc

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBER_QUEUE = 1000


class EventKind(Enum):
    """Kinds of events emitted by the supervisor."""
    READY = "ready"
    OUTPUT = "output"
    RESULT = "result"
    ERROR = "error"
    EXIT = "exit"
    UNHEALTHY = "unhealthy"
    RESTART = "restart"


@dataclass
class WorkerEvent:
    """One event about one worker."""

    kind: EventKind
    worker_id: str
    handle: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": f"worker.{self.kind.value}",
            "worker_id": self.worker_id,
            "handle": self.handle,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


class _Closed:
    """Queue termination marker."""

    __slots__ = ()


_CLOSED = _Closed()


class Subscription:
    """
    An ordered channel of events for one consumer.

    Iterate with ``async for event in subscription`` or pull with
    :meth:`get`.  Iteration ends when the subscription or the bus closes.
    """

    def __init__(
        self,
        bus: EventBus,
        kinds: frozenset[EventKind] | None,
        maxsize: int,
    ) -> None:
        self._bus = bus
        self.kinds = kinds
        self._queue: asyncio.Queue[WorkerEvent | _Closed] = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0
        self._closing = False

    def wants(self, event: WorkerEvent) -> bool:
        return self.kinds is None or event.kind in self.kinds

    def _deliver(self, item: WorkerEvent | _Closed) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            # Drop the oldest event so the newest is never lost
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Event subscriber queue full (size=%d); dropped oldest event",
                self._queue.maxsize,
            )
            self._queue.put_nowait(item)

    async def get(self) -> WorkerEvent | None:
        """Wait for the next event, or None once closed."""
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if isinstance(item, _Closed):
            self.closed = True
            return None
        return item

    def get_nowait(self) -> WorkerEvent | None:
        """Return the next queued event without waiting, or None."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if isinstance(item, _Closed):
            self.closed = True
            return None
        return item

    def drain(self) -> list[WorkerEvent]:
        """Return every event queued right now."""
        events: list[WorkerEvent] = []
        while (event := self.get_nowait()) is not None:
            events.append(event)
        return events

    def close(self) -> None:
        """Detach from the bus and end iteration."""
        if self._closing:
            return
        self._closing = True
        self._bus._unsubscribe(self)
        self._deliver(_CLOSED)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> WorkerEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBus:
    """Fan-out of worker events to independent subscriber queues.

    :meth:`publish` is synchronous, so events reach every subscriber in
    publish order.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self,
        kinds: Iterable[EventKind] | None = None,
        maxsize: int = DEFAULT_SUBSCRIBER_QUEUE,
    ) -> Subscription:
        """Create a subscription, optionally filtered to *kinds*."""
        sub = Subscription(
            self,
            frozenset(kinds) if kinds is not None else None,
            maxsize,
        )
        if self._closed:
            sub._deliver(_CLOSED)
        else:
            self._subscribers.append(sub)
        return sub

    def publish(self, event: WorkerEvent) -> None:
        if self._closed:
            logger.debug("Event bus closed; dropping %s", event.kind.value)
            return
        for sub in list(self._subscribers):
            if sub.wants(event):
                sub._deliver(event)

    def close(self) -> None:
        """Close every subscription."""
        self._closed = True
        for sub in list(self._subscribers):
            sub.close()

    def _unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)
