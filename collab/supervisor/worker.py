"""
Worker entity: one supervised subprocess plus its tracked lifecycle state.
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from collab.supervisor.output_buffer import DEFAULT_CAPACITY, OutputBuffer
from collab.time_utils import now_utc

if TYPE_CHECKING:
    from collab.supervisor.process_handle import WorkerProcess

logger = logging.getLogger(__name__)


# ── Worker State ──────────────────────────────────────────────────

class WorkerState(Enum):
    """Lifecycle state of a worker."""
    STARTING = "starting"    # Process spawned, no init record yet
    READY = "ready"          # Idle, waiting for a user turn
    WORKING = "working"      # Processing a user turn
    STOPPING = "stopping"    # Dismiss requested
    STOPPED = "stopped"      # Process exited (terminal)


class HealthTier(Enum):
    """Health classification derived from heartbeat staleness."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


_TRANSITIONS: dict[WorkerState, frozenset[WorkerState]] = {
    WorkerState.STARTING: frozenset({
        WorkerState.READY, WorkerState.WORKING,
        WorkerState.STOPPING, WorkerState.STOPPED,
    }),
    WorkerState.READY: frozenset({
        WorkerState.WORKING, WorkerState.STOPPING, WorkerState.STOPPED,
    }),
    WorkerState.WORKING: frozenset({
        WorkerState.READY, WorkerState.STOPPING, WorkerState.STOPPED,
    }),
    WorkerState.STOPPING: frozenset({WorkerState.STOPPED}),
    WorkerState.STOPPED: frozenset(),
}

INACTIVE_STATES = frozenset({WorkerState.STOPPING, WorkerState.STOPPED})


def can_transition(current: WorkerState, target: WorkerState) -> bool:
    """Return whether *current* -> *target* is a defined edge."""
    return target in _TRANSITIONS[current]


@dataclass(frozen=True)
class WorkerSnapshot:
    """Public fields of a worker at one point in time."""
    id: str
    handle: str
    team_name: str
    working_directory: Path
    state: WorkerState
    spawned_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "handle": self.handle,
            "team_name": self.team_name,
            "working_directory": str(self.working_directory),
            "state": self.state.value,
            "spawned_at": self.spawned_at.isoformat(),
        }


# ── Worker ────────────────────────────────────────────────────────

class Worker:
    """
    A supervised worker.

    Only the supervisor that owns the registry mutates a Worker; other
    components read it.
    """

    def __init__(
        self,
        handle: str,
        team_name: str,
        working_directory: Path,
        session_token: str | None = None,
        restart_count: int = 0,
        output_capacity: int = DEFAULT_CAPACITY,
        worker_id: str | None = None,
    ):
        now = now_utc()
        self.id = worker_id or uuid.uuid4().hex
        self.handle = handle
        self.team_name = team_name
        self.working_directory = working_directory
        self.session_token = session_token
        self.state = WorkerState.STARTING
        self.recent_output = OutputBuffer(output_capacity)
        self.spawned_at = now
        self.last_heartbeat = now
        self.health = HealthTier.HEALTHY
        self.restart_count = restart_count
        self.current_task_id: str | None = None
        self.exit_code: int | None = None

        self.process: WorkerProcess | None = None
        self.exited = asyncio.Event()
        self.watch_task: asyncio.Task | None = None

    def __repr__(self) -> str:
        return (
            f"Worker(id={self.id[:8]}, handle={self.handle!r}, "
            f"state={self.state.value}, health={self.health.value})"
        )

    @property
    def is_live(self) -> bool:
        """Whether the worker still accepts messages."""
        return self.state not in INACTIVE_STATES

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    def transition(self, target: WorkerState) -> bool:
        """Move to *target* if the edge is defined.

        Returns:
            True when the state is now *target*.
        """
        if self.state is target:
            return True
        if not can_transition(self.state, target):
            logger.debug(
                "Ignoring transition %s -> %s for %s",
                self.state.value, target.value, self.handle,
            )
            return False
        logger.debug(
            "Worker %s: %s -> %s", self.handle, self.state.value, target.value,
        )
        self.state = target
        return True

    def touch(self, now: datetime | None = None) -> None:
        """Record protocol activity; any activity counts as healthy."""
        self.last_heartbeat = now or now_utc()
        self.health = HealthTier.HEALTHY

    def add_output(self, line: str) -> None:
        self.recent_output.push(line)

    def snapshot(self) -> WorkerSnapshot:
        return WorkerSnapshot(
            id=self.id,
            handle=self.handle,
            team_name=self.team_name,
            working_directory=self.working_directory,
            state=self.state,
            spawned_at=self.spawned_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready status of the worker."""
        data = self.snapshot().to_dict()
        data.update({
            "health": self.health.value,
            "restart_count": self.restart_count,
            "last_heartbeat": self.last_heartbeat.isoformat(),
            "session_token": self.session_token,
            "current_task_id": self.current_task_id,
            "pid": self.pid,
            "exit_code": self.exit_code,
        })
        return data
