# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

"""Where Collab keeps its runtime files (config.json, logs/).

``COLLAB_DATA_DIR`` relocates the whole tree; otherwise ``~/.collab``.
"""

from __future__ import annotations

import os
from pathlib import Path

DATA_DIR_ENV = "COLLAB_DATA_DIR"


def get_data_dir() -> Path:
    override = os.environ.get(DATA_DIR_ENV)
    if not override:
        return Path.home() / ".collab"
    return Path(override).expanduser().resolve()


def get_log_dir() -> Path:
    """Directory for ``collab.log`` and its rotations."""
    return get_data_dir() / "logs"
