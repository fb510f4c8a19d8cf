"""Orchestrator unit tests."""

from __future__ import annotations

import logging
import unittest
from datetime import datetime, timezone

from zfs_autosnap.config import Config, GlobalConfig, SnapshotsConfig
from zfs_autosnap.orchestrator import RunRequest, RunResult, SnapshotOrchestrator
from zfs_autosnap.zfs import ProcessError

FILESYSTEM_LISTING = (
    "tank\t1000\t-\t-\t1\n"
    "tank/home\t2000\ttrue\t-\t1\n"
    "tank/www\t3000\t-\ttrue\t1\n"
)

SNAPSHOT_LISTING = (
    "tank/home@zfs-snapshot_hourly-2026-01-01-0000\t100\t-\t-\t100\n"
    "tank/home@zfs-snapshot_hourly-2026-01-01-0100\t200\t-\t-\t200\n"
    "tank/home@zfs-snapshot_hourly-2026-01-01-0200\t5000\t-\t-\t300\n"
    "tank/www@zfs-snapshot_hourly-2026-01-01-0200\t10\t-\t-\t300\n"
)

NOW = datetime(2026, 1, 1, 3, 0, tzinfo=timezone.utc)


def _make_config(keep: int = 2, min_size_bytes: int | None = None) -> Config:
    return Config(
        global_cfg=GlobalConfig(log_level="info", zfs_executable="zfs"),
        snapshots=SnapshotsConfig(
            prefix="zfs-snapshot",
            label="hourly",
            keep=keep,
            min_size_bytes=min_size_bytes,
            property_name="com.sun:auto-snapshot",
        ),
    )


class FakeZfs:
    def __init__(
        self,
        filesystems: str = FILESYSTEM_LISTING,
        snapshots: str = SNAPSHOT_LISTING,
        fail_on: set[str] | None = None,
    ) -> None:
        self.filesystems = filesystems
        self.snapshots = snapshots
        self.fail_on = fail_on or set()
        self.calls: list[list[str]] = []

    def run(self, args: list[str]) -> str:
        self.calls.append(args)
        if args[1] == "list":
            if "list" in self.fail_on:
                raise ProcessError("command failed", args, 1, "no zfs")
            return self.filesystems if args[-1] == "filesystem" else self.snapshots
        if args[-1] in self.fail_on:
            raise ProcessError("command failed", args, 1, "busy")
        return ""

    def mutations(self) -> list[list[str]]:
        return [call[1:] for call in self.calls if call[1] != "list"]


def _run(
    runner: FakeZfs,
    config: Config | None = None,
    request: RunRequest | None = None,
) -> RunResult:
    orchestrator = SnapshotOrchestrator(
        config or _make_config(),
        runner=runner,
        now=lambda: NOW,
        logger=logging.getLogger("zfs_autosnap.orchestrator_test"),
    )
    return orchestrator.run(request or RunRequest(dry_run=False))


class OrchestratorTests(unittest.TestCase):
    def test_creates_then_destroys(self) -> None:
        runner = FakeZfs()
        with self.assertLogs("zfs_autosnap.orchestrator_test", level="INFO"):
            result = _run(runner)
        self.assertEqual(
            runner.mutations(),
            [
                ["snapshot", "tank/home@zfs-snapshot_hourly-2026-01-01-0300"],
                ["destroy", "tank/home@zfs-snapshot_hourly-2026-01-01-0000"],
                ["snapshot", "tank/www@zfs-snapshot_hourly-2026-01-01-0300"],
            ],
        )
        self.assertEqual(result, RunResult(created=2, destroyed=1))
        self.assertEqual(result.exit_code, 0)

    def test_listing_taken_once_per_kind(self) -> None:
        runner = FakeZfs()
        _run(runner)
        listings = [call[-1] for call in runner.calls if call[1] == "list"]
        self.assertEqual(listings, ["filesystem", "snapshot"])

    def test_skips_below_min_size(self) -> None:
        runner = FakeZfs()
        with self.assertLogs("zfs_autosnap.orchestrator_test", level="INFO") as logs:
            result = _run(runner, config=_make_config(min_size_bytes=1000))
        self.assertEqual(
            runner.mutations(),
            [
                ["snapshot", "tank/home@zfs-snapshot_hourly-2026-01-01-0300"],
                ["destroy", "tank/home@zfs-snapshot_hourly-2026-01-01-0000"],
            ],
        )
        self.assertEqual(result.skipped, 1)
        self.assertTrue(
            any(
                "event=snapshot_not_needed filesystem=tank/www" in entry
                for entry in logs.output
            )
        )

    def test_create_failure_skips_destroy_and_continues(self) -> None:
        runner = FakeZfs(fail_on={"tank/home@zfs-snapshot_hourly-2026-01-01-0300"})
        with self.assertLogs("zfs_autosnap.orchestrator_test", level="ERROR") as logs:
            result = _run(runner)
        self.assertEqual(
            runner.mutations(),
            [
                ["snapshot", "tank/home@zfs-snapshot_hourly-2026-01-01-0300"],
                ["snapshot", "tank/www@zfs-snapshot_hourly-2026-01-01-0300"],
            ],
        )
        self.assertEqual(result, RunResult(created=1, failed=1))
        self.assertEqual(result.exit_code, 1)
        self.assertTrue(
            any("event=snapshot_create_failed" in entry for entry in logs.output)
        )

    def test_destroy_failure_continues_with_rest(self) -> None:
        runner = FakeZfs(fail_on={"tank/home@zfs-snapshot_hourly-2026-01-01-0000"})
        config = _make_config(keep=0)
        with self.assertLogs("zfs_autosnap.orchestrator_test", level="ERROR"):
            result = _run(runner, config=config)
        destroyed = [call[1] for call in runner.mutations() if call[0] == "destroy"]
        self.assertEqual(
            destroyed,
            [
                "tank/home@zfs-snapshot_hourly-2026-01-01-0000",
                "tank/home@zfs-snapshot_hourly-2026-01-01-0100",
                "tank/home@zfs-snapshot_hourly-2026-01-01-0200",
                "tank/www@zfs-snapshot_hourly-2026-01-01-0200",
            ],
        )
        self.assertEqual(result, RunResult(created=2, destroyed=3, failed=1))

    def test_new_snapshot_never_destroyed_in_same_run(self) -> None:
        runner = FakeZfs()
        _run(runner, config=_make_config(keep=0))
        destroyed = {call[1] for call in runner.mutations() if call[0] == "destroy"}
        self.assertNotIn("tank/home@zfs-snapshot_hourly-2026-01-01-0300", destroyed)
        self.assertNotIn("tank/www@zfs-snapshot_hourly-2026-01-01-0300", destroyed)

    def test_dry_run_performs_no_mutation(self) -> None:
        runner = FakeZfs()
        with self.assertLogs("zfs_autosnap.orchestrator_test", level="INFO") as logs:
            result = _run(runner, request=RunRequest(dry_run=True))
        self.assertEqual(runner.mutations(), [])
        self.assertEqual(result, RunResult(created=2, destroyed=1))
        self.assertTrue(
            any(
                "dry_run=true args=destroy tank/home@zfs-snapshot_hourly-2026-01-01-0000"
                in entry
                for entry in logs.output
            )
        )

    def test_listing_failure_returns_error(self) -> None:
        runner = FakeZfs(fail_on={"list"})
        with self.assertLogs("zfs_autosnap.orchestrator_test", level="ERROR") as logs:
            result = _run(runner)
        self.assertEqual(result.exit_code, 1)
        self.assertEqual(runner.mutations(), [])
        self.assertTrue(any("event=listing_failed" in entry for entry in logs.output))

    def test_malformed_listing_returns_error(self) -> None:
        runner = FakeZfs(filesystems="tank\n")
        with self.assertLogs("zfs_autosnap.orchestrator_test", level="ERROR"):
            result = _run(runner)
        self.assertEqual(result.exit_code, 1)
        self.assertEqual(runner.mutations(), [])

    def test_filesystem_filter(self) -> None:
        runner = FakeZfs()
        with self.assertLogs("zfs_autosnap.orchestrator_test", level="INFO") as logs:
            result = _run(
                runner,
                request=RunRequest(dry_run=False, filesystem_names=("tank/www", "tank")),
            )
        self.assertEqual(
            runner.mutations(),
            [["snapshot", "tank/www@zfs-snapshot_hourly-2026-01-01-0300"]],
        )
        self.assertEqual(result.created, 1)
        self.assertTrue(
            any(
                "event=filesystem_not_selected filesystem=tank " in entry
                for entry in logs.output
            )
        )

    def test_no_opted_in_filesystems(self) -> None:
        runner = FakeZfs(filesystems="tank\t1\t-\t-\t1\n")
        result = _run(runner)
        self.assertEqual(result, RunResult())
        self.assertEqual(runner.mutations(), [])


if __name__ == "__main__":
    unittest.main()
