from __future__ import annotations
# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

"""Exceptions raised by Collab.

Everything derives from :class:`CollabError`.  Spawn-time rejections are
raised synchronously and leave the registry untouched::

    try:
        await supervisor.spawn("reviewer", team_name="core")
    except WorkerCapacityError:
        ...
"""


class CollabError(Exception):
    """Root of the Collab exception tree."""


# ── Workers ──────────────────────────────────────────────────


class ProcessError(CollabError):
    """A worker could not be started, found, or managed."""


class WorkerCapacityError(ProcessError):
    def __init__(self, max_workers: int) -> None:
        self.max_workers = max_workers
        super().__init__(f"Maximum workers ({max_workers}) reached")


class DuplicateHandleError(ProcessError):
    def __init__(self, handle: str) -> None:
        self.handle = handle
        super().__init__(f"Worker with handle '{handle}' already exists")


class WorkerSpawnError(ProcessError):
    """The OS refused to start the worker executable."""


class SupervisorShutdownError(ProcessError):
    """Raised by spawn once shutdown has begun."""


# ── Configuration ────────────────────────────────────────────


class ConfigError(CollabError):
    """config.json is unreadable or malformed."""


class ConfigValidationError(ConfigError):
    """config.json parsed but does not match the schema."""
