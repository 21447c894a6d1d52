"""
Process handle for a single worker subprocess.
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from collab.exceptions import WorkerSpawnError

logger = logging.getLogger(__name__)


class WorkerProcess:
    """
    Handle for one worker OS process.

    Owns the three pipes.  Knows nothing about the protocol or the
    registry; the supervisor drives it.
    """

    def __init__(
        self,
        command: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
    ):
        self.command = list(command)
        self.cwd = cwd
        self.env = env or {}
        self.process: asyncio.subprocess.Process | None = None

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def returncode(self) -> int | None:
        return self.process.returncode if self.process else None

    @property
    def stdout(self) -> asyncio.StreamReader:
        assert self.process is not None and self.process.stdout is not None
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        assert self.process is not None and self.process.stderr is not None
        return self.process.stderr

    async def start(self) -> None:
        """
        Spawn the subprocess with piped stdin/stdout/stderr.

        Raises:
            WorkerSpawnError: The executable or working directory is unusable.
        """
        if self.process is not None:
            raise RuntimeError(f"Process already started (PID {self.process.pid})")

        logger.debug("Command: %s (cwd=%s)", " ".join(self.command), self.cwd)
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.command,
                cwd=str(self.cwd),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **self.env},
            )
        except OSError as e:
            raise WorkerSpawnError(
                f"Failed to start {self.command[0]!r} in {self.cwd}: {e}"
            ) from e
        logger.info("Process started: %s (PID %s)", self.command[0], self.process.pid)

    def write(self, data: bytes) -> None:
        """Queue *data* on stdin without waiting for the pipe to drain.

        Raises:
            BrokenPipeError: stdin is closed.
        """
        stdin = self.process.stdin if self.process else None
        if stdin is None or stdin.is_closing():
            raise BrokenPipeError("stdin is closed")
        stdin.write(data)

    async def drain(self) -> None:
        stdin = self.process.stdin if self.process else None
        if stdin is not None and not stdin.is_closing():
            await stdin.drain()

    def close_stdin(self) -> None:
        stdin = self.process.stdin if self.process else None
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    def terminate(self) -> None:
        """Send SIGTERM (no-op once the process has exited)."""
        if self.process is None or self.process.returncode is not None:
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            logger.debug("terminate(): process %s already gone", self.pid)

    def kill(self) -> None:
        """Send SIGKILL (no-op once the process has exited)."""
        if self.process is None or self.process.returncode is not None:
            return
        logger.warning("Killing process (PID %s)", self.pid)
        try:
            self.process.kill()
        except ProcessLookupError:
            logger.debug("kill(): process %s already gone", self.pid)

    async def wait(self) -> int:
        """Wait for exit and return the exit code."""
        if self.process is None:
            raise RuntimeError("Process not started")
        return await self.process.wait()

    def is_alive(self) -> bool:
        return self.process is not None and self.process.returncode is None
