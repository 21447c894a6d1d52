# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import os


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collab",
        description="Collab - supervisor for long-lived worker processes",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Override runtime data directory (default: ~/.collab or COLLAB_DATA_DIR)",
    )
    sub = parser.add_subparsers(dest="command")

    # ── Run ───────────────────────────────────────────────
    p_run = sub.add_parser(
        "run", help="Spawn one worker and stream its events as JSON lines",
    )
    p_run.add_argument("--handle", required=True, help="Worker handle")
    p_run.add_argument("--team", default=None, help="Team name (default from config)")
    p_run.add_argument("--cwd", default=None, help="Working directory for the worker")
    p_run.add_argument("--resume", default=None, metavar="TOKEN", help="Session token to resume")
    p_run.add_argument("--message", default=None, help="Initial message to send")
    p_run.add_argument(
        "--follow", action="store_true",
        help="Keep streaming after the first result (until exit or Ctrl-C)",
    )
    p_run.add_argument(
        "--timeout", type=float, default=None,
        help="Give up after this many seconds",
    )
    p_run.set_defaults(func=_lazy_run)

    # ── Config ────────────────────────────────────────────
    p_config = sub.add_parser("config", help="Show or initialise configuration")
    config_sub = p_config.add_subparsers(dest="config_command")

    p_config_show = config_sub.add_parser("show", help="Print the effective configuration")
    p_config_show.set_defaults(func=_lazy_config_show)

    p_config_init = config_sub.add_parser("init", help="Write the default configuration")
    p_config_init.add_argument(
        "--force", action="store_true", help="Overwrite an existing config.json",
    )
    p_config_init.set_defaults(func=_lazy_config_init)

    return parser


def cli_main(argv: list[str] | None = None) -> None:
    from dotenv import load_dotenv

    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    # Apply --data-dir override before any command
    if args.data_dir:
        os.environ["COLLAB_DATA_DIR"] = args.data_dir

    from collab.logging_config import setup_logging
    from collab.paths import get_log_dir

    setup_logging(level=_resolve_log_level(), log_dir=get_log_dir())

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


def _resolve_log_level() -> str:
    """COLLAB_LOG_LEVEL wins over system.log_level from config.json."""
    level = os.environ.get("COLLAB_LOG_LEVEL")
    if level:
        return level

    from collab.config.models import load_config
    from collab.exceptions import ConfigError

    try:
        return load_config().system.log_level
    except ConfigError:
        return "INFO"


# ── Lazy import wrappers ──────────────────────────────────


def _lazy_run(args: argparse.Namespace) -> None:
    from cli.commands.run import cmd_run

    cmd_run(args)


def _lazy_config_show(args: argparse.Namespace) -> None:
    from cli.commands.config_cmd import cmd_config_show

    cmd_config_show(args)


def _lazy_config_init(args: argparse.Namespace) -> None:
    from cli.commands.config_cmd import cmd_config_init

    cmd_config_init(args)
