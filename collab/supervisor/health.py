"""
Heartbeat-based health monitoring for supervised workers.
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime

from collab.config.models import SupervisorConfig
from collab.supervisor.worker import INACTIVE_STATES, HealthTier, Worker
from collab.time_utils import now_utc, seconds_since

logger = logging.getLogger(__name__)


def compute_health(
    idle_sec: float,
    degraded_after_sec: float,
    unhealthy_after_sec: float,
) -> HealthTier:
    """Map time since the last heartbeat to a health tier."""
    if idle_sec > unhealthy_after_sec:
        return HealthTier.UNHEALTHY
    if idle_sec > degraded_after_sec:
        return HealthTier.DEGRADED
    return HealthTier.HEALTHY


@dataclass(frozen=True)
class UnhealthyTransition:
    """A worker that became unhealthy during a sweep."""
    worker: Worker
    idle_sec: float

    @property
    def reason(self) -> str:
        return f"No activity for {round(self.idle_sec)}s"


UnhealthyCallback = Callable[[UnhealthyTransition], Awaitable[None]]


class HealthMonitor:
    """
    Periodic sweep over live workers.

    Responsibilities:
    - Recompute each worker's health tier from heartbeat staleness
    - Report each *entry* into the unhealthy tier exactly once
    """

    def __init__(
        self,
        config: SupervisorConfig,
        workers: Callable[[], Iterable[Worker]],
        on_unhealthy: UnhealthyCallback | None = None,
    ):
        self.config = config
        self._workers = workers
        self._on_unhealthy = on_unhealthy
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self, now: datetime | None = None) -> list[UnhealthyTransition]:
        """Recompute health for every live worker.

        Returns:
            Workers whose tier moved into unhealthy on this sweep.
        """
        now = now or now_utc()
        transitions: list[UnhealthyTransition] = []

        for worker in list(self._workers()):
            if worker.state in INACTIVE_STATES:
                continue

            idle = seconds_since(worker.last_heartbeat, now)
            previous = worker.health
            worker.health = compute_health(
                idle,
                self.config.degraded_after_sec,
                self.config.unhealthy_after_sec,
            )

            if worker.health is HealthTier.UNHEALTHY and previous is not HealthTier.UNHEALTHY:
                logger.warning(
                    "Worker %s is unhealthy (%.0fs since activity)",
                    worker.handle, idle,
                )
                transitions.append(UnhealthyTransition(worker=worker, idle_sec=idle))
            elif worker.health is not previous:
                logger.info(
                    "Worker %s health: %s -> %s (idle=%.0fs)",
                    worker.handle, previous.value, worker.health.value, idle,
                )

        return transitions

    async def check_once(self, now: datetime | None = None) -> list[UnhealthyTransition]:
        """Sweep and dispatch every new unhealthy transition."""
        transitions = self.sweep(now)
        if self._on_unhealthy is not None:
            for transition in transitions:
                try:
                    await self._on_unhealthy(transition)
                except Exception:
                    logger.exception(
                        "Unhealthy handler failed for %s", transition.worker.handle,
                    )
        return transitions

    def start(self) -> None:
        """Start the background sweep loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="collab-health-monitor")

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        logger.info(
            "Health monitor started (interval=%.1fs)",
            self.config.health_check_interval_sec,
        )
        try:
            while True:
                await asyncio.sleep(self.config.health_check_interval_sec)
                try:
                    await self.check_once()
                except Exception as e:
                    logger.error("Error in health check sweep: %s", e)
        finally:
            logger.info("Health monitor stopped")
