"""
Worker Supervisor - Manages lifecycle of worker child processes.
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Coroutine, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from collab.config.models import SupervisorConfig
from collab.exceptions import (
    CollabError,
    DuplicateHandleError,
    SupervisorShutdownError,
    WorkerCapacityError,
)
from collab.logging_config import bind_worker_context, clear_worker_context
from collab.supervisor.events import (
    DEFAULT_SUBSCRIBER_QUEUE,
    EventBus,
    EventKind,
    Subscription,
    WorkerEvent,
)
from collab.supervisor.framing import iter_lines
from collab.supervisor.health import HealthMonitor, UnhealthyTransition
from collab.supervisor.process_handle import WorkerProcess
from collab.supervisor.protocol import (
    ProtocolRecord,
    RecordKind,
    classify_line,
    encode_user_message,
)
from collab.supervisor.worker import Worker, WorkerSnapshot, WorkerState
from collab.time_utils import now_utc, seconds_since

logger = logging.getLogger(__name__)

_RESTART_STATS_WINDOW_SEC = 3600.0


class WorkerSupervisor:
    """
    Supervisor for worker child processes.

    Responsibilities:
    - Spawn/dismiss workers, enforcing capacity and unique handles
    - Decode each worker's output stream and drive its state machine
    - Health monitoring from heartbeat staleness
    - Bounded automatic restart of unhealthy workers
    - Publish every lifecycle change on the event bus
    """

    def __init__(
        self,
        config: SupervisorConfig | None = None,
        event_bus: EventBus | None = None,
    ):
        self.config = config or SupervisorConfig()
        self.events = event_bus or EventBus()

        self.workers: dict[str, Worker] = {}
        self._handles: dict[str, str] = {}
        self._reserved: set[str] = set()
        self._restarting: set[str] = set()
        self._restart_total = 0
        self._recent_restarts: deque[datetime] = deque()
        self._background: set[asyncio.Task] = set()
        self._shutdown = False

        self.health_monitor = HealthMonitor(
            self.config,
            workers=lambda: list(self.workers.values()),
            on_unhealthy=self._on_unhealthy,
        )

    async def __aenter__(self) -> WorkerSupervisor:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown

    async def start(self) -> None:
        """Start the health monitor."""
        self.health_monitor.start()

    def subscribe(
        self,
        kinds: Iterable[EventKind] | None = None,
        maxsize: int = DEFAULT_SUBSCRIBER_QUEUE,
    ) -> Subscription:
        """Subscribe to worker events (all kinds unless *kinds* is given)."""
        return self.events.subscribe(kinds, maxsize=maxsize)

    # ── Spawn ─────────────────────────────────────────────────────

    async def spawn(
        self,
        handle: str,
        team_name: str | None = None,
        working_directory: str | Path | None = None,
        initial_message: str | None = None,
        session_token: str | None = None,
    ) -> WorkerSnapshot:
        """
        Spawn a worker process.

        Readiness is asynchronous: the returned snapshot is in the
        ``starting`` state and the ``ready`` event follows the init record.

        Raises:
            WorkerCapacityError: The registry is full.
            DuplicateHandleError: *handle* already has a live worker.
            WorkerSpawnError: The process could not be started.
            SupervisorShutdownError: Shutdown is in progress.
        """
        return await self._spawn(
            handle,
            team_name=team_name,
            working_directory=working_directory,
            initial_message=initial_message,
            session_token=session_token,
            restart_count=0,
        )

    async def _spawn(
        self,
        handle: str,
        *,
        team_name: str | None,
        working_directory: str | Path | None,
        initial_message: str | None,
        session_token: str | None,
        restart_count: int,
    ) -> WorkerSnapshot:
        if self._shutdown:
            raise SupervisorShutdownError("Supervisor is shutting down")
        if len(self.workers) + len(self._reserved) >= self.config.max_workers:
            raise WorkerCapacityError(self.config.max_workers)
        if handle in self._handles or handle in self._reserved:
            raise DuplicateHandleError(handle)

        worker = Worker(
            handle=handle,
            team_name=team_name or self.config.default_team_name,
            working_directory=Path(working_directory) if working_directory else Path.cwd(),
            session_token=session_token,
            restart_count=restart_count,
            output_capacity=self.config.output_buffer_capacity,
        )
        process = WorkerProcess(
            command=self._build_command(session_token),
            cwd=worker.working_directory,
            env=self._build_env(worker),
        )

        # The handle stays reserved while the OS process starts so a
        # concurrent spawn cannot claim it.
        self._reserved.add(handle)
        try:
            await process.start()
        finally:
            self._reserved.discard(handle)

        if self._shutdown:
            process.kill()
            await process.wait()
            raise SupervisorShutdownError("Supervisor is shutting down")

        worker.process = process
        self.workers[worker.id] = worker
        self._handles[handle] = worker.id
        worker.watch_task = asyncio.create_task(
            self._watch(worker), name=f"collab-watch-{handle}",
        )

        if initial_message:
            self._spawn_background(self._send_initial_message(worker, initial_message))

        logger.info(
            "Spawned %s (%s..., PID %s, restart_count=%d)",
            handle, worker.id[:8], worker.pid, restart_count,
        )
        return worker.snapshot()

    def _build_command(self, session_token: str | None) -> list[str]:
        command = list(self.config.worker_command)
        if session_token:
            command += [self.config.resume_flag, session_token]
        return command

    def _build_env(self, worker: Worker) -> dict[str, str]:
        return {
            "FORCE_COLOR": "0",
            "COLLAB_TEAM_NAME": worker.team_name,
            "COLLAB_AGENT_TYPE": "worker",
            "COLLAB_AGENT_NAME": worker.handle,
            "COLLAB_WORKER_ID": worker.id,
            "COLLAB_SERVER_URL": self.config.server_url,
        }

    async def _send_initial_message(self, worker: Worker, message: str) -> None:
        # Give the process a moment to initialise before the first turn
        await asyncio.sleep(self.config.initial_message_delay_sec)
        if not self.send(worker.id, message):
            logger.warning(
                "Initial message not delivered to %s (state=%s)",
                worker.handle, worker.state.value,
            )

    # ── Send ──────────────────────────────────────────────────────

    def send(self, id_or_handle: str, message: str) -> bool:
        """
        Write a user turn to a worker's stdin (fire-and-forget).

        Returns:
            False when no live worker matches or the write failed.
        """
        worker = self.resolve(id_or_handle)
        if worker is None or not worker.is_live or worker.process is None:
            return False

        try:
            worker.process.write(encode_user_message(message))
        except (OSError, RuntimeError) as e:
            logger.warning("Write to %s failed: %s", worker.handle, e)
            self._emit(EventKind.ERROR, worker, {"error": f"write failed: {e}"})
            return False

        worker.transition(WorkerState.WORKING)
        worker.add_output(f"[user] {message}")
        self._spawn_background(self._drain(worker))
        return True

    async def _drain(self, worker: Worker) -> None:
        try:
            await worker.process.drain()
        except (ConnectionResetError, BrokenPipeError) as e:
            logger.warning("stdin drain failed for %s: %s", worker.handle, e)
            self._emit(EventKind.ERROR, worker, {"error": f"write failed: {e}"})

    # ── Output handling ───────────────────────────────────────────

    async def _watch(self, worker: Worker) -> None:
        """Pump both output pipes until EOF, then finalize the worker."""
        bind_worker_context(worker.id, worker.handle)
        try:
            await asyncio.gather(
                self._pump_stdout(worker),
                self._pump_stderr(worker),
            )
            code: int | None = None
            try:
                code = await worker.process.wait()
            except (OSError, RuntimeError) as e:
                logger.error("Waiting for %s failed: %s", worker.handle, e)
                self._emit(EventKind.ERROR, worker, {"error": str(e)})
            self._finalize(worker, code)
        finally:
            clear_worker_context()

    async def _pump_stdout(self, worker: Worker) -> None:
        try:
            async for line in iter_lines(worker.process.stdout, self.config.read_chunk_size):
                self._handle_line(worker, line)
        except OSError as e:
            logger.error("stdout read failed for %s: %s", worker.handle, e)
            self._emit(EventKind.ERROR, worker, {"error": f"stdout read failed: {e}"})

    async def _pump_stderr(self, worker: Worker) -> None:
        try:
            async for line in iter_lines(worker.process.stderr, self.config.read_chunk_size):
                text = line.strip()
                if not text or any(p in text for p in self.config.stderr_ignore_patterns):
                    continue
                worker.add_output(f"[stderr] {text}")
                self._emit(EventKind.ERROR, worker, {"error": text})
        except OSError as e:
            logger.error("stderr read failed for %s: %s", worker.handle, e)
            self._emit(EventKind.ERROR, worker, {"error": f"stderr read failed: {e}"})

    def _handle_line(self, worker: Worker, line: str) -> None:
        if not line.strip():
            return
        try:
            record = classify_line(line)
            if record is None:
                # Not a protocol record: keep it as diagnostic text
                worker.add_output(line)
                return
            self._apply_record(worker, record)
        except Exception:
            logger.exception("Failed to handle output line from %s", worker.handle)

    def _apply_record(self, worker: Worker, record: ProtocolRecord) -> None:
        """Apply one protocol record to *worker* and publish its events."""
        worker.touch()

        if record.kind is RecordKind.INIT:
            worker.session_token = record.session_id
            worker.transition(WorkerState.READY)
            logger.info(
                "Worker %s ready (session: %s...)",
                worker.handle, (record.session_id or "")[:8],
            )
            self._emit(EventKind.READY, worker, {"session_id": record.session_id})

        elif record.kind is RecordKind.ASSISTANT:
            worker.transition(WorkerState.WORKING)
            for text in record.texts:
                worker.add_output(text)

        elif record.kind is RecordKind.RESULT:
            worker.transition(WorkerState.READY)
            if record.result:
                worker.add_output(f"[result] {record.result}")
            self._emit(EventKind.RESULT, worker, {
                "result": record.result or "",
                "duration_ms": record.duration_ms,
            })

        self._emit(EventKind.OUTPUT, worker, {"event": record.raw})

    def _finalize(self, worker: Worker, code: int | None) -> None:
        """Mark *worker* stopped and drop it from the registry (idempotent)."""
        if worker.state is WorkerState.STOPPED:
            return
        expected = worker.state is WorkerState.STOPPING
        worker.exit_code = code
        worker.transition(WorkerState.STOPPED)

        if self.workers.get(worker.id) is worker:
            del self.workers[worker.id]
        if self._handles.get(worker.handle) == worker.id:
            del self._handles[worker.handle]

        if expected:
            logger.info("Worker %s exited with code %s", worker.handle, code)
        else:
            logger.warning("Worker %s exited unexpectedly (code=%s)", worker.handle, code)
        self._emit(EventKind.EXIT, worker, {"code": code})
        worker.exited.set()

    # ── Dismiss ───────────────────────────────────────────────────

    async def dismiss(self, id_or_handle: str) -> None:
        """
        Terminate a worker and wait until it is stopped and removed.

        Shutdown flow:
        1. Close stdin and send SIGTERM
        2. If not exited within ``stop_grace_sec``, send SIGKILL
        3. If still not exited within ``force_kill_timeout_sec``, drop it
        """
        worker = self.resolve(id_or_handle)
        if worker is None or worker.state is WorkerState.STOPPED:
            return

        process = worker.process
        if worker.state is not WorkerState.STOPPING:
            logger.info("Dismissing %s", worker.handle)
            worker.transition(WorkerState.STOPPING)
            if process is not None:
                process.close_stdin()
                process.terminate()

        if await self._wait_exited(worker, self.config.stop_grace_sec):
            return

        logger.warning("Worker %s did not exit gracefully, sending SIGKILL", worker.handle)
        if process is not None:
            process.kill()
        if await self._wait_exited(worker, self.config.force_kill_timeout_sec):
            return

        logger.error(
            "Worker %s did not exit after SIGKILL; removing from registry",
            worker.handle,
        )
        if worker.watch_task is not None:
            worker.watch_task.cancel()
        self._finalize(worker, process.returncode if process else None)

    @staticmethod
    async def _wait_exited(worker: Worker, timeout: float) -> bool:
        try:
            async with asyncio.timeout(timeout):
                await worker.exited.wait()
        except TimeoutError:
            return False
        return True

    async def dismiss_all(self) -> None:
        """Dismiss every live worker concurrently."""
        ids = list(self.workers)
        if not ids:
            return
        logger.info("Dismissing %d workers", len(ids))
        results = await asyncio.gather(
            *(self.dismiss(worker_id) for worker_id in ids),
            return_exceptions=True,
        )
        for worker_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.error("Dismiss failed for %s: %s", worker_id[:8], result)

    async def shutdown(self) -> None:
        """Stop health monitoring, cancel pending work, dismiss all workers."""
        logger.info("Shutting down supervisor")
        self._shutdown = True

        # Stop the monitor first so no restart races the shutdown
        await self.health_monitor.stop()

        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self.dismiss_all()
        self.events.close()
        logger.info("Supervisor shut down")

    # ── Restart ───────────────────────────────────────────────────

    async def restart(self, worker_id: str) -> WorkerSnapshot | None:
        """
        Replace a worker with a fresh process under the same handle.

        The new worker keeps handle, team, working directory and session
        token, and gets a new id with ``restart_count + 1``.

        Returns:
            The new worker's snapshot, or None when the worker is unknown,
            stopping or stopped, already restarting, or the re-spawn failed.
        """
        worker = self.resolve(worker_id)
        if worker is None or not worker.is_live:
            return None
        if worker.handle in self._restarting:
            logger.debug("Restart already in progress for %s", worker.handle)
            return None

        handle = worker.handle
        restart_count = worker.restart_count + 1
        self._restarting.add(handle)
        try:
            logger.info(
                "Restarting %s (attempt %d/%d)",
                handle, restart_count, self.config.max_restart_attempts,
            )
            await self.dismiss(worker.id)
            self._record_restart(now_utc())

            try:
                snapshot = await self._spawn(
                    handle,
                    team_name=worker.team_name,
                    working_directory=worker.working_directory,
                    initial_message=None,
                    session_token=worker.session_token,
                    restart_count=restart_count,
                )
            except CollabError as e:
                logger.error("Failed to restart %s: %s", handle, e)
                self._emit(EventKind.ERROR, worker, {"error": f"restart failed: {e}"})
                return None

            self.events.publish(WorkerEvent(
                kind=EventKind.RESTART,
                worker_id=snapshot.id,
                handle=handle,
                data={"restart_count": restart_count, "previous_id": worker.id},
            ))
            return snapshot
        finally:
            self._restarting.discard(handle)

    async def _on_unhealthy(self, transition: UnhealthyTransition) -> None:
        worker = transition.worker
        self._emit(EventKind.UNHEALTHY, worker, {
            "reason": transition.reason,
            "idle_sec": round(transition.idle_sec, 1),
        })

        if not self.config.auto_restart or self._shutdown:
            return
        if worker.restart_count >= self.config.max_restart_attempts:
            logger.error(
                "Max restart attempts reached for %s (%d/%d). Manual intervention required.",
                worker.handle, worker.restart_count, self.config.max_restart_attempts,
            )
            return
        self._spawn_background(self.restart(worker.id))

    def _record_restart(self, when: datetime) -> None:
        self._restart_total += 1
        self._recent_restarts.append(when)
        self._prune_restarts(when)

    def _prune_restarts(self, now: datetime) -> None:
        recent = self._recent_restarts
        while recent and seconds_since(recent[0], now) > _RESTART_STATS_WINDOW_SEC:
            recent.popleft()

    def restart_stats(self) -> dict[str, int]:
        """Restarts performed in total and during the last hour."""
        self._prune_restarts(now_utc())
        return {"total": self._restart_total, "last_hour": len(self._recent_restarts)}

    def is_restarting(self, id_or_handle: str) -> bool:
        """True while a restart of the worker's handle is in flight."""
        worker = self.resolve(id_or_handle)
        handle = worker.handle if worker else id_or_handle
        return handle in self._restarting

    # ── Background tasks ──────────────────────────────────────────

    def _spawn_background(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed: %s", exc, exc_info=exc)

    def _emit(self, kind: EventKind, worker: Worker, data: dict[str, Any]) -> None:
        self.events.publish(WorkerEvent(
            kind=kind, worker_id=worker.id, handle=worker.handle, data=data,
        ))

    # ── Queries ───────────────────────────────────────────────────

    def resolve(self, id_or_handle: str) -> Worker | None:
        """Find a worker by id, falling back to handle."""
        worker = self.workers.get(id_or_handle)
        if worker is not None:
            return worker
        return self.get_worker_by_handle(id_or_handle)

    def list_workers(self) -> list[Worker]:
        return list(self.workers.values())

    def get_worker(self, worker_id: str) -> Worker | None:
        return self.workers.get(worker_id)

    def get_worker_by_handle(self, handle: str) -> Worker | None:
        worker_id = self._handles.get(handle)
        return self.workers.get(worker_id) if worker_id else None

    def live_count(self) -> int:
        return len(self.workers)

    def health_stats(self) -> dict[str, int]:
        stats = {"total": len(self.workers), "healthy": 0, "degraded": 0, "unhealthy": 0}
        for worker in self.workers.values():
            stats[worker.health.value] += 1
        return stats

    def get_output(self, id_or_handle: str) -> list[str]:
        """Recent output lines of a worker (empty when unknown)."""
        worker = self.resolve(id_or_handle)
        return worker.recent_output.snapshot() if worker else []

    def get_status(self, id_or_handle: str) -> dict[str, Any]:
        worker = self.resolve(id_or_handle)
        if worker is None:
            return {"status": "not_found"}
        status = worker.to_dict()
        status["uptime_sec"] = seconds_since(worker.spawned_at)
        status["restarting"] = self.is_restarting(worker.handle)
        return status

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        return {w.handle: self.get_status(w.id) for w in self.list_workers()}
