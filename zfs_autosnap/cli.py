"""CLI entrypoint and logging setup."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Iterable, Mapping

from zfs_autosnap.config import (
    KiB,
    Config,
    ConfigError,
    load_config,
    require_label,
    resolve_executable,
)
from zfs_autosnap.orchestrator import RunRequest, SnapshotOrchestrator


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="zfs-autosnap",
        description="Create zfs snapshots and rotate out old ones.",
    )
    parser.add_argument("--config", help="path to config.toml")
    parser.add_argument(
        "-l",
        "--label",
        help="snapshot label, usually 'hourly', 'daily' or 'monthly'",
    )
    parser.add_argument(
        "-k",
        "--keep",
        type=int,
        metavar="NUM",
        help="keep NUM recent snapshots and destroy older ones",
    )
    parser.add_argument(
        "-m",
        "--min-size",
        type=int,
        metavar="KB",
        help="skip filesystems whose latest snapshot holds at most KB kilobytes",
    )
    parser.add_argument("-p", "--prefix", help="prefix of snapshot names")
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="print actions without running them",
    )
    parser.add_argument(
        "--filesystem",
        action="append",
        help="limit the run to a specific filesystem (repeatable)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="print info messages"
    )
    parser.add_argument(
        "-d", "--debug", action="store_true", help="print debug messages"
    )
    parser.add_argument("--log-level", help="override log level")

    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)
    if not argv:
        parser.print_help()
        raise SystemExit(0)
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    numeric = _parse_level(level)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main(argv: Iterable[str] | None = None) -> int:
    try:
        args = parse_args(argv)
    except SystemExit as exc:
        return int(exc.code or 0)

    try:
        config = _load_and_override_config(args, os.environ)
    except ConfigError as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return 2

    setup_logging(config.global_cfg.log_level)
    logging.getLogger(__name__).info(
        "event=command_start label=%s keep=%d dry_run=%s filesystem_filter=%s",
        config.snapshots.label,
        config.snapshots.keep,
        str(args.dry_run).lower(),
        args.filesystem,
    )
    request = RunRequest(
        dry_run=args.dry_run,
        filesystem_names=tuple(args.filesystem) if args.filesystem else None,
    )
    return SnapshotOrchestrator(config).run(request).exit_code


def _load_and_override_config(
    args: argparse.Namespace, environ: Mapping[str, str]
) -> Config:
    if args.config:
        config = load_config(Path(args.config).expanduser())
    else:
        config = Config.from_dict({})
    config = config.with_overrides(
        log_level=_log_level_from_args(args),
        zfs_executable=resolve_executable(
            environ, config.global_cfg.zfs_executable
        ),
        prefix=args.prefix,
        label=args.label,
        keep=args.keep,
        min_size_bytes=args.min_size * KiB if args.min_size is not None else None,
    )
    require_label(config)
    return config


def _log_level_from_args(args: argparse.Namespace) -> str | None:
    if args.log_level:
        return args.log_level
    if args.debug:
        return "debug"
    if args.verbose:
        return "info"
    return None


def _parse_level(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        pass
    normalized = value.lower()
    mapping = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }
    if normalized not in mapping:
        raise ConfigError(f"invalid log level: {value}")
    return mapping[normalized]
