# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0
"""Global test fixtures for Collab.

Provides data directory isolation, config cache management, and a
supervisor wired to in-memory fake processes.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from collab.config.models import SupervisorConfig, invalidate_cache
from collab.supervisor.manager import WorkerSupervisor
from tests.helpers.fake_process import FakeProcessFactory


# ── Isolation ─────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _isolate_config_cache():
    """Every test starts and ends with an empty config cache."""
    invalidate_cache()
    yield
    invalidate_cache()


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point COLLAB_DATA_DIR at a fresh temporary directory."""
    d = tmp_path / "collab-data"
    d.mkdir()
    monkeypatch.setenv("COLLAB_DATA_DIR", str(d))
    return d


# ── Supervisor ────────────────────────────────────────────


@pytest.fixture
def fast_config() -> SupervisorConfig:
    """Supervisor config with short timers for tests."""
    return SupervisorConfig(
        max_workers=3,
        stop_grace_sec=0.1,
        force_kill_timeout_sec=0.1,
        initial_message_delay_sec=0.01,
        health_check_interval_sec=0.05,
        worker_command=["fake-worker", "--stream"],
    )


@pytest.fixture
def fake_processes(monkeypatch: pytest.MonkeyPatch) -> FakeProcessFactory:
    """Replace WorkerProcess in the supervisor with in-memory fakes."""
    factory = FakeProcessFactory()
    monkeypatch.setattr("collab.supervisor.manager.WorkerProcess", factory)
    return factory


@pytest_asyncio.fixture
async def supervisor(
    fast_config: SupervisorConfig,
    fake_processes: FakeProcessFactory,
) -> AsyncIterator[WorkerSupervisor]:
    """A WorkerSupervisor over fake processes; shut down after the test.

    The health monitor is not started; tests drive it explicitly.
    """
    sup = WorkerSupervisor(fast_config)
    yield sup
    if not sup.is_shutting_down:
        await sup.shutdown()
