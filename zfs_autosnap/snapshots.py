"""Snapshot naming and retention handling."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Iterable

from zfs_autosnap.records import SNAPSHOT_SEPARATOR, FilesystemRecord

TIMESTAMP_FORMAT = "%Y-%m-%d-%H%M"
# generated names use "-", older series used "_" before the time
_SUFFIX_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})[-_](?P<time>\d{4})$")

logger = logging.getLogger(__name__)


class SnapshotError(RuntimeError):
    """Raised on snapshot naming errors."""


def snapshot_prefix(filesystem_name: str, prefix: str, label: str) -> str:
    """Return the name shared by every snapshot of one prefix/label series."""
    return f"{filesystem_name}{SNAPSHOT_SEPARATOR}{prefix}_{label}-"


def snapshot_name(
    filesystem_name: str, prefix: str, label: str, created_at: datetime
) -> str:
    if created_at.tzinfo is None:
        raise SnapshotError("created_at must be timezone-aware")
    timestamp = created_at.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    return snapshot_prefix(filesystem_name, prefix, label) + timestamp


def series_timestamp(name: str, series: str) -> datetime | None:
    """Return the timestamp suffix of ``name`` if it belongs to ``series``.

    Only the exact series counts: ``daily`` does not match a
    ``daily-offsite-...`` snapshot.
    """
    if not name.startswith(series):
        return None
    match = _SUFFIX_RE.match(name[len(series):])
    if not match:
        return None
    try:
        parsed = datetime.strptime(
            f"{match.group('date')}-{match.group('time')}", TIMESTAMP_FORMAT
        )
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def _recency_key(
    item: tuple[FilesystemRecord, datetime]
) -> tuple[int, str]:
    # creation time when zfs reported one, else the time encoded in the name
    record, named_at = item
    if record.creation_time is not None:
        return (record.creation_time, record.name)
    return (int(named_at.timestamp()), record.name)


def matching_snapshots(
    filesystem: FilesystemRecord,
    snapshots: Iterable[FilesystemRecord],
    prefix: str,
    label: str,
) -> list[FilesystemRecord]:
    """Snapshots of ``filesystem`` in this prefix/label series, newest first."""
    series = snapshot_prefix(filesystem.name, prefix, label)
    matches: list[tuple[FilesystemRecord, datetime]] = []
    for snap in snapshots:
        if not snap.is_snapshot or snap.owning_filesystem != filesystem.name:
            continue
        named_at = series_timestamp(snap.name, series)
        if named_at is None:
            continue
        matches.append((snap, named_at))
    matches.sort(key=_recency_key, reverse=True)
    logger.debug(
        "event=snapshots_filtered series=%s found=%d", series, len(matches)
    )
    return [snap for snap, _named_at in matches]


def expendable_snapshots(
    filesystem: FilesystemRecord,
    snapshots: Iterable[FilesystemRecord],
    keep: int,
    prefix: str,
    label: str,
) -> list[FilesystemRecord]:
    """Return the snapshots beyond the ``keep`` most recent, oldest first."""
    if keep < 0:
        raise SnapshotError("keep must be >= 0")
    ordered = matching_snapshots(filesystem, snapshots, prefix, label)
    if len(ordered) <= keep:
        return []
    return list(reversed(ordered[keep:]))


def snapshot_needed(
    filesystem: FilesystemRecord,
    snapshots: Iterable[FilesystemRecord],
    min_size: int,
    prefix: str,
    label: str,
) -> bool:
    ordered = matching_snapshots(filesystem, snapshots, prefix, label)
    if not ordered:
        return True
    return ordered[0].bytes_written > min_size
