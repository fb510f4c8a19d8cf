"""Parsing of tab-separated zfs listing output."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator

SNAPSHOT_SEPARATOR = "@"
MIN_FIELDS = 2


class MalformedRecordError(ValueError):
    """Raised when a listing line lacks the required fields."""


class RecordKind(str, Enum):
    FILESYSTEM = "filesystem"
    SNAPSHOT = "snapshot"


@dataclass(frozen=True)
class FilesystemRecord:
    name: str
    owning_filesystem: str
    bytes_written: int
    kind: RecordKind
    auto_snapshot: bool
    creation_time: int | None = None

    @property
    def is_snapshot(self) -> bool:
        return self.kind is RecordKind.SNAPSHOT

    def __str__(self) -> str:
        return f"{self.kind.value} {self.name} ({self.bytes_written} bytes)"


def auto_snapshot_enabled(inherited: str | None, local: str | None) -> bool:
    """Combine the general and the label-specific property.

    Either column reading ``true`` opts the dataset in; there is no
    precedence between them.
    """
    return inherited == "true" or local == "true"


def owning_filesystem(name: str, kind: RecordKind) -> str:
    if kind is RecordKind.FILESYSTEM:
        return name
    return name.split(SNAPSHOT_SEPARATOR, 1)[0]


def parse_record(line: str, kind: RecordKind) -> FilesystemRecord:
    fields = line.rstrip("\r\n").split("\t")
    if len(fields) < MIN_FIELDS or not fields[0]:
        raise MalformedRecordError(f"expected name and size fields: {line!r}")
    name = fields[0]
    return FilesystemRecord(
        name=name,
        owning_filesystem=owning_filesystem(name, kind),
        bytes_written=_parse_size(fields[1]),
        kind=kind,
        auto_snapshot=auto_snapshot_enabled(_field(fields, 2), _field(fields, 3)),
        creation_time=_parse_epoch(_field(fields, 4)),
    )


def parse_listing(text: str, kind: RecordKind) -> list[FilesystemRecord]:
    return list(_iter_records(text, kind))


def _iter_records(text: str, kind: RecordKind) -> Iterator[FilesystemRecord]:
    for line in text.splitlines():
        if not line.strip():
            continue
        yield parse_record(line, kind)


def _field(fields: list[str], index: int) -> str | None:
    if index < len(fields):
        return fields[index]
    return None


def _parse_size(raw: str) -> int:
    # zfs reports "-" for sizes that do not apply
    try:
        value = int(raw)
    except ValueError:
        return 0
    return max(value, 0)


def _parse_epoch(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None
