# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

"""CLI handlers for the ``collab config`` subcommand."""

from __future__ import annotations

import argparse
import json
import sys

from collab.config.models import CollabConfig, get_config_path, load_config, save_config
from collab.exceptions import ConfigError


def cmd_config_show(args: argparse.Namespace) -> None:
    """Print the effective configuration as JSON."""
    try:
        config = load_config()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(config.model_dump(mode="json"), indent=2, ensure_ascii=False))


def cmd_config_init(args: argparse.Namespace) -> None:
    """Write the default configuration to config.json."""
    path = get_config_path()
    if path.exists() and not args.force:
        print(f"Config already exists: {path} (use --force to overwrite)", file=sys.stderr)
        sys.exit(1)
    save_config(CollabConfig(), path)
    print(f"Wrote {path}")
