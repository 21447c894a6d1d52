# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

"""Collab configuration: pydantic models for ``config.json`` plus cached
load / save helpers."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError, model_validator

from collab.exceptions import ConfigError, ConfigValidationError

logger = logging.getLogger(__name__)

# ── Models ───────────────────────────────────────────────────────

DEFAULT_WORKER_COMMAND: list[str] = [
    "claude",
    "--print",
    "--input-format", "stream-json",
    "--output-format", "stream-json",
    "--dangerously-skip-permissions",
]


class SystemConfig(BaseModel):
    log_level: str = "INFO"


class SupervisorConfig(BaseModel):
    """Worker supervisor runtime configuration."""

    max_workers: int = 5
    default_team_name: str = "default"
    health_check_interval_sec: float = 15.0
    degraded_after_sec: float = 30.0  # idle time before "degraded"
    unhealthy_after_sec: float = 60.0  # idle time before "unhealthy"
    stop_grace_sec: float = 5.0  # SIGTERM -> SIGKILL escalation delay
    force_kill_timeout_sec: float = 5.0  # wait for exit after SIGKILL
    max_restart_attempts: int = 3
    auto_restart: bool = True
    output_buffer_capacity: int = 100
    initial_message_delay_sec: float = 0.5
    worker_command: list[str] = list(DEFAULT_WORKER_COMMAND)
    resume_flag: str = "--resume"
    server_url: str = "http://localhost:3847"
    stderr_ignore_patterns: list[str] = ["deprecated"]
    read_chunk_size: int = 64 * 1024

    @model_validator(mode="after")
    def _validate_limits(self) -> SupervisorConfig:
        if self.degraded_after_sec >= self.unhealthy_after_sec:
            raise ValueError(
                f"degraded_after_sec ({self.degraded_after_sec}) must be "
                f"less than unhealthy_after_sec ({self.unhealthy_after_sec})"
            )
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.output_buffer_capacity < 1:
            raise ValueError("output_buffer_capacity must be at least 1")
        if self.max_restart_attempts < 0:
            raise ValueError("max_restart_attempts must not be negative")
        if not self.worker_command:
            raise ValueError("worker_command must not be empty")
        return self


class CollabConfig(BaseModel):
    version: int = 1
    system: SystemConfig = SystemConfig()
    supervisor: SupervisorConfig = SupervisorConfig()


# ── Cache ────────────────────────────────────────────────────────
# One parsed config per process, keyed by path and the file's mtime.

_config: CollabConfig | None = None
_config_path: Path | None = None
_config_mtime: float = 0.0


def invalidate_cache() -> None:
    """Forget the cached config; the next load reads from disk."""
    _remember(None, None)


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def _remember(config: CollabConfig | None, path: Path | None) -> None:
    global _config, _config_path, _config_mtime
    _config = config
    _config_path = path
    _config_mtime = _mtime(path) if path is not None else 0.0


def _cached(path: Path) -> CollabConfig | None:
    if _config is None or _config_path != path:
        return None
    if _mtime(path) != _config_mtime:
        logger.debug("%s changed on disk; reloading", path)
        return None
    return _config


# ── File access ──────────────────────────────────────────────────


def get_config_path(data_dir: Path | None = None) -> Path:
    """``config.json`` inside *data_dir* (default: :func:`collab.paths.get_data_dir`)."""
    if data_dir is None:
        from collab.paths import get_data_dir

        data_dir = get_data_dir()
    return data_dir / "config.json"


def _parse(path: Path) -> CollabConfig:
    try:
        data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse %s: %s", path, exc)
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    try:
        return CollabConfig.model_validate(data)
    except ValidationError as exc:
        logger.error("Invalid config in %s: %s", path, exc)
        raise ConfigValidationError(str(exc)) from exc


def load_config(path: Path | None = None) -> CollabConfig:
    """Return the configuration stored at *path*.

    A missing file yields the defaults.  Repeated calls return the cached
    instance until the file's mtime changes.

    Raises:
        ConfigError: The file is not valid JSON.
        ConfigValidationError: The file does not match the schema.
    """
    path = path or get_config_path()
    config = _cached(path)
    if config is not None:
        return config

    if path.is_file():
        logger.debug("Loading config from %s", path)
        config = _parse(path)
    else:
        logger.info("No config at %s; using defaults", path)
        config = CollabConfig()
    _remember(config, path)
    return config


def save_config(config: CollabConfig, path: Path | None = None) -> None:
    """Write *config* as indented JSON readable only by the owner."""
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(config.model_dump(mode="json"), indent=2, ensure_ascii=False)
    path.write_text(text + "\n", encoding="utf-8")
    os.chmod(path, 0o600)
    logger.debug("Config saved to %s", path)
    _remember(config, path)
