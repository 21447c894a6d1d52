# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0
"""
Worker process supervisor package.

Runs each worker as a separate subprocess speaking newline-delimited
JSON on stdin/stdout, and tracks its lifecycle and health.
"""

from __future__ import annotations

from collab.supervisor.events import EventBus, EventKind, Subscription, WorkerEvent
from collab.supervisor.framing import StreamFramer, iter_lines
from collab.supervisor.health import HealthMonitor, UnhealthyTransition, compute_health
from collab.supervisor.manager import WorkerSupervisor
from collab.supervisor.output_buffer import OutputBuffer
from collab.supervisor.process_handle import WorkerProcess
from collab.supervisor.protocol import (
    ProtocolRecord,
    RecordKind,
    classify_line,
    encode_user_message,
)
from collab.supervisor.worker import HealthTier, Worker, WorkerSnapshot, WorkerState

__all__ = [
    "EventBus",
    "EventKind",
    "Subscription",
    "WorkerEvent",
    "StreamFramer",
    "iter_lines",
    "HealthMonitor",
    "UnhealthyTransition",
    "compute_health",
    "WorkerSupervisor",
    "OutputBuffer",
    "WorkerProcess",
    "ProtocolRecord",
    "RecordKind",
    "classify_line",
    "encode_user_message",
    "HealthTier",
    "Worker",
    "WorkerSnapshot",
    "WorkerState",
]
