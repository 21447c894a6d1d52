# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

"""CLI handler for ``collab run``: one supervised worker, events on stdout."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from collab.config.models import SupervisorConfig, load_config
from collab.exceptions import CollabError
from collab.supervisor.events import EventKind, WorkerEvent
from collab.supervisor.manager import WorkerSupervisor

logger = logging.getLogger(__name__)


def cmd_run(args: argparse.Namespace) -> None:
    try:
        config = load_config()
    except CollabError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        exit_code = asyncio.run(run_worker(args, config.supervisor))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


def _print_event(event: WorkerEvent) -> None:
    print(json.dumps(event.to_dict(), ensure_ascii=False, default=str), flush=True)


def _restart_failed(event: WorkerEvent) -> bool:
    return str(event.data.get("error", "")).startswith("restart failed")


def _being_replaced(supervisor: WorkerSupervisor, handle: str, worker_id: str) -> bool:
    """True when *worker_id* exited because its handle is being restarted."""
    if supervisor.is_restarting(handle):
        return True
    successor = supervisor.get_worker_by_handle(handle)
    return successor is not None and successor.id != worker_id


async def run_worker(args: argparse.Namespace, config: SupervisorConfig) -> int:
    """Spawn the worker described by *args* and relay its events.

    Returns:
        Process exit status for the CLI.
    """
    supervisor = WorkerSupervisor(config)
    events = supervisor.subscribe()

    async with supervisor:
        try:
            snapshot = await supervisor.spawn(
                args.handle,
                team_name=args.team,
                working_directory=args.cwd,
                initial_message=args.message,
                session_token=args.resume,
            )
        except CollabError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        print(json.dumps({"type": "worker.spawned", "data": snapshot.to_dict()}), flush=True)

        status = 0
        current_id = snapshot.id
        try:
            async with asyncio.timeout(args.timeout):
                async for event in events:
                    _print_event(event)
                    if event.kind is EventKind.RESTART:
                        if event.data.get("previous_id") == current_id:
                            current_id = event.worker_id
                        continue
                    if event.worker_id != current_id:
                        continue
                    if event.kind is EventKind.RESULT and not args.follow:
                        break
                    if event.kind is EventKind.ERROR and _restart_failed(event):
                        status = 1
                        break
                    if event.kind is EventKind.EXIT:
                        if _being_replaced(supervisor, args.handle, current_id):
                            continue
                        status = 0 if event.data.get("code") == 0 else 1
                        break
        except TimeoutError:
            logger.warning("Timed out after %.1fs waiting for %s", args.timeout, args.handle)
            status = 1

    # Events published while shutting down (exit of the dismissed worker)
    for event in events.drain():
        _print_event(event)
    return status
