# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

"""Process-wide logging for Collab.

Modules log through ``logging.getLogger(__name__)``; :func:`setup_logging`
routes those records through structlog so each line carries a timestamp,
level, logger name and whatever worker identity is bound in the current
task (see :func:`bind_worker_context`).
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import orjson
import structlog

LOG_FILE_NAME = "collab.log"
_LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
_LOG_FILE_BACKUPS = 5
_WORKER_KEYS = ("worker_id", "handle")


# ── Worker context ─────────────────────────────────────────────


def bind_worker_context(worker_id: str, handle: str) -> None:
    """Tag subsequent log lines of the current task with a worker."""
    structlog.contextvars.bind_contextvars(worker_id=worker_id, handle=handle)


def clear_worker_context() -> None:
    structlog.contextvars.unbind_contextvars(*_WORKER_KEYS)


def get_worker_context() -> dict[str, str]:
    bound = structlog.contextvars.get_contextvars()
    return {key: bound[key] for key in _WORKER_KEYS if key in bound}


# ── Formatters ─────────────────────────────────────────────────


def _pre_chain() -> list:
    """Processors applied to every record before rendering."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _dumps(obj: object, **_kw) -> str:  # noqa: ANN001
    return orjson.dumps(obj, default=str).decode("utf-8")


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:  # noqa: ANN001
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=_pre_chain(),
    )


def _file_handler(log_dir: Path, json_file: bool) -> RotatingFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=_LOG_FILE_MAX_BYTES,
        backupCount=_LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    if json_file:
        renderer = structlog.processors.JSONRenderer(serializer=_dumps)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    handler.setFormatter(_formatter(renderer))
    return handler


# ── Setup ──────────────────────────────────────────────────────


def setup_logging(
    level: str = "INFO",
    log_dir: Path | None = None,
    json_file: bool = True,
) -> None:
    """Install console (and optionally file) handlers on the root logger.

    Args:
        level: Root level name; unknown names fall back to INFO.
        log_dir: Where to write ``collab.log`` (rotated at 10 MB, 5 backups).
            ``None`` logs to the console only.
        json_file: One JSON object per line in the file when True, plain
            text otherwise.
    """
    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    handlers[0].setFormatter(_formatter(structlog.dev.ConsoleRenderer()))
    if log_dir is not None:
        handlers.append(_file_handler(log_dir, json_file))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in handlers:
        handler.setLevel(logging.DEBUG)
        root.addHandler(handler)

    # Selector/transport chatter from asyncio is noise at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)
