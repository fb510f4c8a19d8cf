"""Planner deciding which filesystems get a new snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from zfs_autosnap.config import SnapshotsConfig
from zfs_autosnap.records import FilesystemRecord
from zfs_autosnap.snapshots import (
    expendable_snapshots,
    matching_snapshots,
    snapshot_needed,
)


@dataclass(frozen=True)
class PlanItem:
    filesystem: FilesystemRecord
    action: str
    reason: str
    expendable: tuple[FilesystemRecord, ...] = ()


def plan_snapshots(
    settings: SnapshotsConfig,
    filesystems: Iterable[FilesystemRecord],
    snapshots: Iterable[FilesystemRecord],
    selected: Iterable[str] | None = None,
) -> list[PlanItem]:
    """Plan one item per opted-in filesystem.

    The expendable list is computed from the listing taken before any
    snapshot is created, so a snapshot created in this run is never
    scheduled for removal by the same run.
    """
    snapshot_list = list(snapshots)
    names = set(selected) if selected is not None else None
    plans: list[PlanItem] = []
    for filesystem in filesystems:
        if not filesystem.auto_snapshot:
            continue
        if names is not None and filesystem.name not in names:
            continue
        plans.append(_plan_filesystem(settings, filesystem, snapshot_list))
    return plans


def _plan_filesystem(
    settings: SnapshotsConfig,
    filesystem: FilesystemRecord,
    snapshots: list[FilesystemRecord],
) -> PlanItem:
    previous = matching_snapshots(
        filesystem, snapshots, settings.prefix, settings.label
    )
    if settings.min_size_bytes is not None and not snapshot_needed(
        filesystem,
        snapshots,
        settings.min_size_bytes,
        settings.prefix,
        settings.label,
    ):
        return PlanItem(
            filesystem=filesystem, action="skip", reason="below_min_size"
        )
    if not previous:
        reason = "first_snapshot"
    elif settings.min_size_bytes is None:
        reason = "no_min_size"
    else:
        reason = "changed"
    expendable = expendable_snapshots(
        filesystem, snapshots, settings.keep, settings.prefix, settings.label
    )
    return PlanItem(
        filesystem=filesystem,
        action="snapshot",
        reason=reason,
        expendable=tuple(expendable),
    )
