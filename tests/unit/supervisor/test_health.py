"""
Unit tests for heartbeat-based health monitoring.

Verifies tier thresholds, that each entry into the unhealthy tier is
reported once, and that stopping workers are skipped.
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from collab.config.models import SupervisorConfig
from collab.supervisor.health import HealthMonitor, UnhealthyTransition, compute_health
from collab.supervisor.worker import HealthTier, Worker, WorkerState


def _worker(handle: str = "alice") -> Worker:
    return Worker(handle=handle, team_name="core", working_directory=Path("/tmp"))


def _monitor(workers: list[Worker], on_unhealthy=None, **config) -> HealthMonitor:
    return HealthMonitor(
        SupervisorConfig(**config),
        workers=lambda: workers,
        on_unhealthy=on_unhealthy,
    )


# ── compute_health ───────────────────────────────────────────────


class TestComputeHealth:
    @pytest.mark.parametrize("idle,expected", [
        (0.0, HealthTier.HEALTHY),
        (30.0, HealthTier.HEALTHY),
        (30.1, HealthTier.DEGRADED),
        (60.0, HealthTier.DEGRADED),
        (60.1, HealthTier.UNHEALTHY),
        (3600.0, HealthTier.UNHEALTHY),
    ])
    def test_thresholds(self, idle: float, expected: HealthTier):
        assert compute_health(idle, 30.0, 60.0) is expected


# ── sweep ────────────────────────────────────────────────────────


class TestSweep:
    def test_fresh_worker_is_healthy(self):
        worker = _worker()
        assert _monitor([worker]).sweep() == []
        assert worker.health is HealthTier.HEALTHY

    def test_degraded(self):
        worker = _worker()
        now = worker.last_heartbeat + timedelta(seconds=45)
        assert _monitor([worker]).sweep(now) == []
        assert worker.health is HealthTier.DEGRADED

    def test_unhealthy_reported_once_per_episode(self):
        worker = _worker()
        monitor = _monitor([worker])
        start = worker.last_heartbeat

        first = monitor.sweep(start + timedelta(seconds=61))
        assert [t.worker for t in first] == [worker]
        assert first[0].reason == "No activity for 61s"
        assert worker.health is HealthTier.UNHEALTHY

        # Still idle: no second report
        assert monitor.sweep(start + timedelta(seconds=90)) == []
        assert monitor.sweep(start + timedelta(seconds=120)) == []

        # Activity starts a new episode
        worker.touch(start + timedelta(seconds=121))
        assert monitor.sweep(start + timedelta(seconds=130)) == []
        second = monitor.sweep(start + timedelta(seconds=200))
        assert [t.worker for t in second] == [worker]

    def test_degraded_to_unhealthy_reports(self):
        worker = _worker()
        monitor = _monitor([worker])
        start = worker.last_heartbeat
        assert monitor.sweep(start + timedelta(seconds=40)) == []
        assert len(monitor.sweep(start + timedelta(seconds=70))) == 1

    @pytest.mark.parametrize("state", [WorkerState.STOPPING, WorkerState.STOPPED])
    def test_inactive_workers_are_skipped(self, state: WorkerState):
        worker = _worker()
        worker.transition(state)
        now = worker.last_heartbeat + timedelta(seconds=300)

        assert _monitor([worker]).sweep(now) == []
        assert worker.health is HealthTier.HEALTHY

    def test_custom_thresholds(self):
        worker = _worker()
        monitor = _monitor([worker], degraded_after_sec=1.0, unhealthy_after_sec=2.0)
        assert len(monitor.sweep(worker.last_heartbeat + timedelta(seconds=2.5))) == 1


# ── check_once / loop ────────────────────────────────────────────


class TestHealthMonitorDispatch:
    @pytest.mark.asyncio
    async def test_check_once_invokes_callback(self):
        worker = _worker()
        callback = AsyncMock()
        monitor = _monitor([worker], on_unhealthy=callback)

        await monitor.check_once(worker.last_heartbeat + timedelta(seconds=65))

        callback.assert_awaited_once()
        transition = callback.await_args.args[0]
        assert isinstance(transition, UnhealthyTransition)
        assert transition.worker is worker
        assert transition.idle_sec == pytest.approx(65.0)

    @pytest.mark.asyncio
    async def test_callback_failure_does_not_stop_other_dispatches(self):
        workers = [_worker("a"), _worker("b")]
        callback = AsyncMock(side_effect=[RuntimeError("boom"), None])
        monitor = _monitor(workers, on_unhealthy=callback)
        now = max(w.last_heartbeat for w in workers) + timedelta(seconds=65)

        transitions = await monitor.check_once(now)

        assert len(transitions) == 2
        assert callback.await_count == 2

    @pytest.mark.asyncio
    async def test_loop_start_and_stop(self):
        worker = _worker()
        callback = AsyncMock()
        monitor = _monitor(
            [worker],
            on_unhealthy=callback,
            health_check_interval_sec=0.01,
            degraded_after_sec=0.02,
            unhealthy_after_sec=0.05,
        )

        monitor.start()
        assert monitor.running
        await asyncio.sleep(0.2)
        await monitor.stop()

        assert not monitor.running
        callback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await _monitor([]).stop()
