# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from collab.config.models import (
    DEFAULT_WORKER_COMMAND,
    CollabConfig,
    SupervisorConfig,
    SystemConfig,
    get_config_path,
    invalidate_cache,
    load_config,
    save_config,
)

__all__ = [
    "DEFAULT_WORKER_COMMAND",
    "CollabConfig",
    "SupervisorConfig",
    "SystemConfig",
    "get_config_path",
    "invalidate_cache",
    "load_config",
    "save_config",
]
