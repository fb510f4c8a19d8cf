"""Wrappers around the zfs binary."""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Sequence

from zfs_autosnap.records import (
    SNAPSHOT_SEPARATOR,
    FilesystemRecord,
    RecordKind,
    parse_listing,
)


class ZfsError(RuntimeError):
    """Base class for zfs command failures."""


class ProcessError(ZfsError):
    """Raised when the zfs binary cannot be run or exits non-zero."""

    def __init__(
        self,
        message: str,
        args: Sequence[str] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr

    def __str__(self) -> str:
        text = super().__str__()
        if self.returncode is not None:
            text = f"{text} (exit {self.returncode})"
        if self.stderr:
            text = f"{text}: {self.stderr}"
        return text


class InternalError(ZfsError):
    """Raised when a caller asks for an operation that must never happen."""


class CommandRunner:
    """Command runner abstraction for testability."""

    def run(self, args: list[str]) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class ShellRunner(CommandRunner):
    def run(self, args: list[str]) -> str:
        env = os.environ.copy()
        env["PATH"] = _ensure_sbin_on_path(env.get("PATH", ""))
        try:
            completed = subprocess.run(
                args,
                check=True,
                text=True,
                capture_output=True,
                env=env,
            )
        except subprocess.CalledProcessError as exc:
            raise ProcessError(
                f"command failed: {' '.join(args)}",
                args,
                exc.returncode,
                (exc.stderr or "").strip(),
            ) from exc
        except OSError as exc:
            raise ProcessError(
                f"cannot run {args[0]}: {exc.strerror or exc}", args
            ) from exc
        return completed.stdout


class ZfsClient:
    def __init__(
        self,
        executable: str,
        runner: CommandRunner | None = None,
        dry_run: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.executable = executable
        self.runner = runner or ShellRunner()
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(__name__)

    def list_records(
        self, kind: RecordKind, property_name: str, label: str
    ) -> list[FilesystemRecord]:
        columns = ",".join(
            [
                "name",
                "used",
                property_name,
                f"{property_name}:{label}",
                "creation",
            ]
        )
        args = [self.executable, "list", "-H", "-p", "-o", columns, "-t", kind.value]
        self.logger.info("event=zfs_command args=%s", " ".join(args[1:]))
        output = self.runner.run(args)
        return parse_listing(output, kind)

    def create_snapshot(self, filesystem: FilesystemRecord, name: str) -> None:
        if filesystem.is_snapshot:
            raise InternalError(f"cannot snapshot a snapshot: {filesystem.name}")
        if not name.startswith(filesystem.name + SNAPSHOT_SEPARATOR):
            raise InternalError(
                f"snapshot {name} does not belong to {filesystem.name}"
            )
        self._mutate(["snapshot", name])

    def destroy_snapshot(self, snapshot: FilesystemRecord) -> None:
        if not snapshot.is_snapshot or SNAPSHOT_SEPARATOR not in snapshot.name:
            raise InternalError(
                f"filesystems can't be destroyed: {snapshot.name}"
            )
        self._mutate(["destroy", snapshot.name])

    def _mutate(self, args: list[str]) -> None:
        self.logger.info(
            "event=zfs_command dry_run=%s args=%s",
            str(self.dry_run).lower(),
            " ".join(args),
        )
        if self.dry_run:
            return
        output = self.runner.run([self.executable, *args])
        if output:
            self.logger.debug("event=zfs_output output=%s", output.strip())


def _ensure_sbin_on_path(path: str) -> str:
    parts = [entry for entry in path.split(os.pathsep) if entry]
    for entry in ("/usr/sbin", "/sbin"):
        if entry not in parts:
            parts.append(entry)
    return os.pathsep.join(parts)
