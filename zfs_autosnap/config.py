"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for 3.10
    import tomli as tomllib  # type: ignore[no-redef]

KiB = 1024

EXECUTABLE_ENV_VAR = "ZFS_CMD"

DEFAULT_LOG_LEVEL = "error"
DEFAULT_ZFS_EXECUTABLE = "zfs"
DEFAULT_PREFIX = "zfs-snapshot"
DEFAULT_KEEP = 8
DEFAULT_PROPERTY_NAME = "com.sun:auto-snapshot"

_FORBIDDEN_NAME_CHARS = set("@/ \t\n")


class ConfigError(ValueError):
    """Raised when configuration is invalid."""


@dataclass(frozen=True)
class GlobalConfig:
    log_level: str
    zfs_executable: str


@dataclass(frozen=True)
class SnapshotsConfig:
    prefix: str
    label: str
    keep: int
    min_size_bytes: int | None
    property_name: str


@dataclass(frozen=True)
class Config:
    global_cfg: GlobalConfig
    snapshots: SnapshotsConfig

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Config":
        global_data = data.get("global", {})
        snapshots_data = data.get("snapshots", {})

        global_cfg = GlobalConfig(
            log_level=str(global_data.get("log_level", DEFAULT_LOG_LEVEL)),
            zfs_executable=str(
                global_data.get("zfs_executable", DEFAULT_ZFS_EXECUTABLE)
            ),
        )
        min_size = snapshots_data.get("min_size_bytes")
        snapshots = SnapshotsConfig(
            prefix=str(snapshots_data.get("prefix", DEFAULT_PREFIX)),
            label=str(snapshots_data.get("label", "")),
            keep=int(snapshots_data.get("keep", DEFAULT_KEEP)),
            min_size_bytes=int(min_size) if min_size is not None else None,
            property_name=str(
                snapshots_data.get("property_name", DEFAULT_PROPERTY_NAME)
            ),
        )
        config = Config(global_cfg=global_cfg, snapshots=snapshots)
        validate_config(config)
        return config

    def with_overrides(
        self,
        *,
        log_level: str | None = None,
        zfs_executable: str | None = None,
        prefix: str | None = None,
        label: str | None = None,
        keep: int | None = None,
        min_size_bytes: int | None = None,
    ) -> "Config":
        global_cfg = self.global_cfg
        if log_level is not None:
            global_cfg = replace(global_cfg, log_level=log_level)
        if zfs_executable is not None:
            global_cfg = replace(global_cfg, zfs_executable=zfs_executable)
        snapshots = self.snapshots
        if prefix is not None:
            snapshots = replace(snapshots, prefix=prefix)
        if label is not None:
            snapshots = replace(snapshots, label=label)
        if keep is not None:
            snapshots = replace(snapshots, keep=keep)
        if min_size_bytes is not None:
            snapshots = replace(snapshots, min_size_bytes=min_size_bytes)
        config = Config(global_cfg=global_cfg, snapshots=snapshots)
        validate_config(config)
        return config


def load_config(path: Path) -> Config:
    if not path.is_absolute():
        raise ConfigError(f"config path must be absolute: {path}")
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise ConfigError(f"failed to read config: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc
    return Config.from_dict(data)


def resolve_executable(
    environ: Mapping[str, str], default: str = DEFAULT_ZFS_EXECUTABLE
) -> str:
    """Return the zfs binary, honouring ``ZFS_CMD`` when set."""
    value = environ.get(EXECUTABLE_ENV_VAR, "").strip()
    return value or default


def validate_config(config: Config) -> None:
    _validate_log_level(config.global_cfg.log_level)
    if not config.global_cfg.zfs_executable:
        raise ConfigError("global.zfs_executable is required")

    _validate_name_part(config.snapshots.prefix, "snapshots.prefix")
    # label may still come from the command line
    if config.snapshots.label:
        _validate_name_part(config.snapshots.label, "snapshots.label")
    if config.snapshots.keep < 0:
        raise ConfigError("snapshots.keep must be >= 0")
    min_size = config.snapshots.min_size_bytes
    if min_size is not None and min_size < 0:
        raise ConfigError("snapshots.min_size_bytes must be >= 0")
    if not config.snapshots.property_name:
        raise ConfigError("snapshots.property_name is required")


def require_label(config: Config) -> None:
    if not config.snapshots.label:
        raise ConfigError("snapshots.label is required")


def _validate_name_part(value: str, field: str) -> None:
    if not value:
        raise ConfigError(f"{field} is required")
    bad = sorted(_FORBIDDEN_NAME_CHARS.intersection(value))
    if bad:
        raise ConfigError(f"{field} must not contain {bad!r}: {value}")


def _validate_log_level(value: str) -> None:
    valid = {"debug", "info", "warning", "error", "critical"}
    if value.lower() not in valid:
        raise ConfigError(
            f"global.log_level must be one of {sorted(valid)}; got {value}"
        )
