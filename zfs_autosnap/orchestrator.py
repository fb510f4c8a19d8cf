"""Snapshot creation and rotation orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from zfs_autosnap.config import Config
from zfs_autosnap.planner import PlanItem, plan_snapshots
from zfs_autosnap.records import MalformedRecordError, RecordKind
from zfs_autosnap.snapshots import snapshot_name
from zfs_autosnap.zfs import CommandRunner, ProcessError, ZfsClient, ZfsError


@dataclass(frozen=True)
class RunRequest:
    dry_run: bool
    filesystem_names: tuple[str, ...] | None = None


@dataclass(frozen=True)
class RunResult:
    created: int = 0
    destroyed: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


class SnapshotOrchestrator:
    def __init__(
        self,
        config: Config,
        runner: CommandRunner | None = None,
        now: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.logger = logger or logging.getLogger(__name__)

    def run(self, request: RunRequest) -> RunResult:
        settings = self.config.snapshots
        client = ZfsClient(
            self.config.global_cfg.zfs_executable,
            runner=self.runner,
            dry_run=request.dry_run,
            logger=self.logger,
        )
        try:
            filesystems = client.list_records(
                RecordKind.FILESYSTEM, settings.property_name, settings.label
            )
            snapshots = client.list_records(
                RecordKind.SNAPSHOT, settings.property_name, settings.label
            )
        except (ProcessError, MalformedRecordError) as exc:
            self.logger.error("event=listing_failed error=%s", exc)
            return RunResult(failed=1)

        plan = plan_snapshots(
            settings, filesystems, snapshots, request.filesystem_names
        )
        if request.filesystem_names:
            self._log_unknown_filesystems(request.filesystem_names, plan)

        created_at = self.now()
        counts = {"created": 0, "destroyed": 0, "skipped": 0, "failed": 0}
        for item in plan:
            self._process_item(client, item, created_at, counts)

        result = RunResult(**counts)
        self.logger.info(
            "event=run_complete label=%s dry_run=%s created=%d destroyed=%d skipped=%d failed=%d",
            settings.label,
            str(request.dry_run).lower(),
            result.created,
            result.destroyed,
            result.skipped,
            result.failed,
        )
        return result

    def _process_item(
        self,
        client: ZfsClient,
        item: PlanItem,
        created_at: datetime,
        counts: dict[str, int],
    ) -> None:
        filesystem = item.filesystem
        self.logger.debug(
            "event=filesystem_planned filesystem=%s action=%s reason=%s expendable=%d",
            filesystem.name,
            item.action,
            item.reason,
            len(item.expendable),
        )
        if item.action == "skip":
            self.logger.info(
                "event=snapshot_not_needed filesystem=%s reason=%s",
                filesystem.name,
                item.reason,
            )
            counts["skipped"] += 1
            return

        settings = self.config.snapshots
        name = snapshot_name(
            filesystem.name, settings.prefix, settings.label, created_at
        )
        try:
            client.create_snapshot(filesystem, name)
        except ZfsError as exc:
            self.logger.error(
                "event=snapshot_create_failed filesystem=%s snapshot=%s error=%s",
                filesystem.name,
                name,
                exc,
            )
            counts["failed"] += 1
            return
        self.logger.info(
            "event=snapshot_created filesystem=%s snapshot=%s reason=%s",
            filesystem.name,
            name,
            item.reason,
        )
        counts["created"] += 1

        for expendable in item.expendable:
            try:
                client.destroy_snapshot(expendable)
            except ZfsError as exc:
                self.logger.error(
                    "event=snapshot_destroy_failed filesystem=%s snapshot=%s error=%s",
                    filesystem.name,
                    expendable.name,
                    exc,
                )
                counts["failed"] += 1
                continue
            self.logger.info(
                "event=snapshot_destroyed filesystem=%s snapshot=%s",
                filesystem.name,
                expendable.name,
            )
            counts["destroyed"] += 1

    def _log_unknown_filesystems(
        self, names: tuple[str, ...], plan: list[PlanItem]
    ) -> None:
        planned = {item.filesystem.name for item in plan}
        for name in names:
            if name not in planned:
                self.logger.info(
                    "event=filesystem_not_selected filesystem=%s reason=not_opted_in_or_missing",
                    name,
                )
