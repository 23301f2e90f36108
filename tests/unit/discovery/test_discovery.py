"""Tests for the discovery pass over backup storage."""

from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from historyrestore import probe
from historyrestore.discovery import BackupMetadata, discover_deleted_files, discover_workspaces
from historyrestore.locations import BackupRoot, RootKind


def _write(path: Path, text: str, mtime_ns: int | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime_ns is not None:
        os.utime(path, ns=(mtime_ns, mtime_ns))
    return path


def _history_dir(directory: Path, resource: str | None, snapshots: dict[str, tuple[str, int]]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    if resource is not None:
        _write(directory / "entries.json", json.dumps({"version": 1, "resource": resource, "entries": []}))
    for name, (text, mtime_ns) in snapshots.items():
        _write(directory / name, text, mtime_ns)
    return directory


def _tree(path: Path) -> BackupRoot:
    return BackupRoot(path, RootKind.BACKUP_TREE)


class DiscoveryScenarioTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name).resolve()
        self.workspace = base / "ws"
        self.workspace.mkdir()
        self.storage = base / "storage"
        self.storage.mkdir()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_marker_for_deleted_file_yields_one_record(self) -> None:
        origin = self.workspace / "dir" / "deleted.txt"
        _history_dir(self.storage / "history" / "h1", origin.as_uri(), {"backup-1": ("content", 5_000_000_000)})

        result = discover_deleted_files(self.workspace, [_tree(self.storage)])

        self.assertEqual(result.errors, ())
        self.assertEqual(len(result.records), 1)
        record = result.records[0]
        self.assertEqual(record.relative_path, Path("dir/deleted.txt"))
        self.assertEqual(record.origin_path, origin)
        self.assertEqual(record.backup_snapshot_path.name, "backup-1")
        self.assertEqual(record.deletion_time_ns, 5_000_000_000)

    def test_existing_origin_yields_no_record(self) -> None:
        origin = _write(self.workspace / "dir" / "deleted.txt", "still here")
        _history_dir(self.storage / "history" / "h1", origin.as_uri(), {"backup-1": ("content", 5_000_000_000)})

        result = discover_deleted_files(self.workspace, [_tree(self.storage)])

        self.assertEqual(result.records, ())
        self.assertIn(origin, result.candidate_paths)

    def test_origin_outside_workspace_yields_no_record(self) -> None:
        outside = self.workspace.parent / "elsewhere" / "gone.txt"
        sibling = Path(str(self.workspace) + "2") / "gone.txt"
        _history_dir(self.storage / "a", outside.as_uri(), {"s": ("x", 1_000_000_000)})
        _history_dir(self.storage / "b", sibling.as_uri(), {"s": ("x", 1_000_000_000)})

        result = discover_deleted_files(self.workspace, [_tree(self.storage)])

        self.assertEqual(result.records, ())
        self.assertEqual(result.candidate_paths, frozenset())

    def test_newest_sibling_snapshot_is_authoritative(self) -> None:
        origin = self.workspace / "notes.md"
        _history_dir(
            self.storage / "h",
            origin.as_uri(),
            {
                "AbC1.md": ("first", 1_000_000_000),
                "ZzZ9.md": ("latest", 9_000_000_000),
                "MmM5.md": ("middle", 5_000_000_000),
            },
        )

        result = discover_deleted_files(self.workspace, [_tree(self.storage)])

        self.assertEqual(len(result.records), 1)
        self.assertEqual(result.records[0].backup_snapshot_path, self.storage / "h" / "ZzZ9.md")

    def test_marker_without_snapshots_yields_nothing(self) -> None:
        _history_dir(self.storage / "h", (self.workspace / "a.txt").as_uri(), {})
        result = discover_deleted_files(self.workspace, [_tree(self.storage)])
        self.assertEqual(result.records, ())

    def test_remote_resource_is_resolved_against_workspace(self) -> None:
        origin = self.workspace / "remote.py"
        _history_dir(
            self.storage / "h",
            f"vscode-remote://ssh-remote%2Bhost{origin.as_posix()}",
            {"s.py": ("print()", 2_000_000_000)},
        )
        result = discover_deleted_files(self.workspace, [_tree(self.storage)])
        self.assertEqual([record.relative_path for record in result.records], [Path("remote.py")])


class DiscoveryDuplicateTests(unittest.TestCase):
    def test_same_origin_in_two_roots_keeps_newer_snapshot(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            origin = workspace / "a.txt"
            older = _history_dir(base / "local" / "h", origin.as_uri(), {"old": ("v1", 1_000_000_000)})
            newer = _history_dir(base / "global" / "h", origin.as_uri(), {"new": ("v2", 7_000_000_000)})

            forward = discover_deleted_files(workspace, [_tree(base / "local"), _tree(base / "global")])
            backward = discover_deleted_files(workspace, [_tree(base / "global"), _tree(base / "local")])

            for result in (forward, backward):
                self.assertEqual(len(result.records), 1)
                self.assertEqual(result.records[0].backup_snapshot_path, newer / "new")
            self.assertNotEqual(forward.records[0].backup_snapshot_path, older / "old")

    def test_equal_snapshot_times_keep_first_scanned_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            origin = workspace / "a.txt"
            first = _history_dir(base / "one" / "h", origin.as_uri(), {"s": ("v1", 3_000_000_000)})
            _history_dir(base / "two" / "h", origin.as_uri(), {"s": ("v2", 3_000_000_000)})

            result = discover_deleted_files(workspace, [_tree(base / "one"), _tree(base / "two")])

            self.assertEqual(result.records[0].backup_snapshot_path, first / "s")


class HistoryDirectoryFallbackTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.workspace = Path(self._tmp.name).resolve() / "ws"
        self.history = self.workspace / ".vscode" / "history"
        self.history.mkdir(parents=True)
        self.root = BackupRoot(self.history, RootKind.HISTORY_DIRECTORY)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_embedded_file_marker_names_the_origin(self) -> None:
        origin = self.workspace / "src" / "gone.py"
        _history_dir(
            self.history / "opaque-id",
            None,
            {"snap": (f"# origin {origin.as_uri()}\nprint('x')\n", 4_000_000_000)},
        )

        result = discover_deleted_files(self.workspace, [self.root])

        self.assertEqual([record.relative_path for record in result.records], [Path("src/gone.py")])

    def test_directory_name_is_the_last_resort(self) -> None:
        _history_dir(self.history / "readme.txt", None, {"snap": ("no marker\n", 4_000_000_000)})

        result = discover_deleted_files(self.workspace, [self.root])

        self.assertEqual([record.origin_path for record in result.records], [self.workspace / "readme.txt"])

    def test_marker_without_resource_routes_to_fallback(self) -> None:
        directory = _history_dir(self.history / "config.yaml", None, {"snap": ("a: 1\n", 4_000_000_000)})
        _write(directory / "entries.json", json.dumps({"version": 1}))

        result = discover_deleted_files(self.workspace, [self.root])

        self.assertEqual([record.relative_path for record in result.records], [Path("config.yaml")])
        self.assertEqual(result.records[0].backup_snapshot_path, directory / "snap")

    def test_marker_is_preferred_over_fallback(self) -> None:
        origin = self.workspace / "real" / "name.txt"
        _history_dir(self.history / "opaque", origin.as_uri(), {"snap": ("x", 4_000_000_000)})

        result = discover_deleted_files(self.workspace, [self.root])

        self.assertEqual([record.origin_path for record in result.records], [origin])


class DiscoveryRobustnessTests(unittest.TestCase):
    def test_backup_tree_ignores_unmarked_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            _history_dir(base / "logs" / "session", None, {"renderer.log": ("log", 1_000_000_000)})

            result = discover_deleted_files(workspace, [_tree(base / "logs")])

            self.assertEqual(result.records, ())
            self.assertEqual(result.directories_scanned, 2)

    def test_malformed_marker_is_a_scan_error_and_walk_continues(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            broken = base / "storage" / "broken"
            _write(broken / "entries.json", "{oops")
            _write(broken / "snap", "x", 1_000_000_000)
            _history_dir(base / "storage" / "good", (workspace / "ok.txt").as_uri(), {"s": ("y", 2_000_000_000)})

            result = discover_deleted_files(workspace, [_tree(base / "storage")])

            self.assertEqual([record.relative_path for record in result.records], [Path("ok.txt")])
            self.assertEqual(len(result.errors), 1)
            self.assertEqual(result.errors[0].path, broken / "entries.json")

    def test_missing_root_is_silently_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            result = discover_deleted_files(base, [_tree(base / "nope")])
            self.assertEqual(result.records, ())
            self.assertEqual(result.errors, ())

    def test_unlistable_directory_is_recorded_and_other_roots_still_scan(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            locked = base / "locked"
            locked.mkdir()
            _history_dir(base / "open" / "h", (workspace / "a.txt").as_uri(), {"s": ("y", 2_000_000_000)})

            real_list = probe.list_directory_safe

            def fake_list(directory: Path):
                if directory == locked:
                    return [], PermissionError(13, "Permission denied")
                return real_list(directory)

            with mock.patch("historyrestore.discovery.list_directory_safe", side_effect=fake_list):
                result = discover_deleted_files(workspace, [_tree(locked), _tree(base / "open")])

            self.assertEqual([record.relative_path for record in result.records], [Path("a.txt")])
            self.assertEqual([error.path for error in result.errors], [locked])

    def test_root_that_cannot_be_stat_ed_is_recorded_and_other_roots_still_scan(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            locked = base / "locked" / "History"
            _history_dir(base / "open" / "h", (workspace / "a.txt").as_uri(), {"s": ("y", 2_000_000_000)})
            real_stat = Path.stat

            def fake_stat(path: Path, *args, **kwargs):
                if path == locked:
                    raise PermissionError(13, "Permission denied", str(path))
                return real_stat(path, *args, **kwargs)

            with mock.patch.object(Path, "stat", fake_stat):
                result = discover_deleted_files(workspace, [_tree(locked), _tree(base / "open")])

            self.assertEqual([record.relative_path for record in result.records], [Path("a.txt")])
            self.assertEqual([error.path for error in result.errors], [locked])
            self.assertIn("Permission denied", result.errors[0].message)

    def test_resource_with_embedded_nul_is_ignored(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            storage = base / "storage"
            _history_dir(storage / "bad", workspace.as_uri() + "/a%00b.txt", {"s": ("x", 1_000_000_000)})
            _history_dir(storage / "good", (workspace / "ok.txt").as_uri(), {"s": ("y", 2_000_000_000)})

            result = discover_deleted_files(workspace, [_tree(storage)])

            self.assertEqual([record.relative_path for record in result.records], [Path("ok.txt")])
            self.assertEqual(result.errors, ())

    def test_walk_stops_at_depth_bound(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            deep = base / "storage" / "l1" / "l2" / "l3"
            _history_dir(deep, (workspace / "deep.txt").as_uri(), {"s": ("y", 2_000_000_000)})

            shallow = discover_deleted_files(workspace, [_tree(base / "storage")], max_depth=2)
            enough = discover_deleted_files(workspace, [_tree(base / "storage")], max_depth=3)

            self.assertEqual(shallow.records, ())
            self.assertEqual([record.relative_path for record in enough.records], [Path("deep.txt")])

    def test_two_passes_over_unchanged_storage_are_identical(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            workspace = base / "ws"
            workspace.mkdir()
            for idx, name in enumerate(["b/x.txt", "a.txt", "b/c/y.txt"]):
                _history_dir(base / "s" / f"h{idx}", (workspace / name).as_uri(), {"s": ("y", (idx + 1) * 10**9)})

            first = discover_deleted_files(workspace, [_tree(base / "s")])
            second = discover_deleted_files(workspace, [_tree(base / "s")])

            self.assertEqual(first, second)
            self.assertEqual(len(first.records), 3)

    def test_discover_workspaces_runs_one_pass_per_workspace(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp).resolve()
            ws_a = base / "a"
            ws_b = base / "b"
            ws_a.mkdir()
            ws_b.mkdir()
            _history_dir(base / "s" / "h1", (ws_a / "one.txt").as_uri(), {"s": ("1", 10**9)})
            _history_dir(base / "s" / "h2", (ws_b / "two.txt").as_uri(), {"s": ("2", 10**9)})

            results = discover_workspaces([ws_a, ws_b], lambda _ws: [_tree(base / "s")])

            self.assertEqual([r.workspace_root for r in results], [ws_a, ws_b])
            self.assertEqual([r.records[0].relative_path for r in results], [Path("one.txt"), Path("two.txt")])


class BackupMetadataTests(unittest.TestCase):
    def test_from_json_validates_field_types(self) -> None:
        self.assertIsNone(BackupMetadata.from_json(["not", "an", "object"]))
        self.assertEqual(BackupMetadata.from_json({"resource": 5, "version": True}), BackupMetadata(None, None))
        self.assertEqual(
            BackupMetadata.from_json({"resource": "file:///x", "version": 1}),
            BackupMetadata("file:///x", 1),
        )


if __name__ == "__main__":
    unittest.main()
