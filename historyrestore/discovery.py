"""Discover deleted workspace files from local-history backup storage.

One pass walks every candidate backup root in order, resolves each history
directory to an origin path, keeps origins that sit inside the workspace and
no longer exist, and picks the newest snapshot per origin. The pass threads an
explicit accumulator through the walk and returns a fresh ``ScanResult``; no
state survives between passes.
"""

from __future__ import annotations

import logging
import stat
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .deleted_tree.types import FileRecord
from .locations import BackupRoot, RootKind
from .probe import (
    ENTRIES_JSON_FILENAME,
    ProbeEntry,
    extract_origin_from_snapshot,
    is_path_in_workspace,
    list_directory_safe,
    newest_snapshot,
    normalize_absolute,
    normalize_resource_uri,
    path_exists,
    read_json_safe,
)

logger = logging.getLogger(__name__)

MAX_SCAN_DEPTH = 15


@dataclass(frozen=True)
class ScanError:
    """A non-fatal problem met while scanning one backup location."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class BackupMetadata:
    """Parsed metadata marker; ``resource`` is ``None`` when absent or not a string."""

    resource: str | None
    version: int | None = None

    @classmethod
    def from_json(cls, data: object) -> "BackupMetadata | None":
        """Return parsed metadata, or ``None`` when ``data`` is not a JSON object."""
        if not isinstance(data, dict):
            return None
        resource = data.get("resource")
        version = data.get("version")
        return cls(
            resource=resource if isinstance(resource, str) and resource else None,
            version=version if isinstance(version, int) and not isinstance(version, bool) else None,
        )


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one discovery pass.

    ``records`` holds one ``FileRecord`` per deleted origin path. ``errors``
    lists locations that could not be read; an empty ``records`` with empty
    ``errors`` means nothing is deleted. ``candidate_paths`` is every
    in-workspace origin seen, deleted or not, for change watching.
    """

    workspace_root: Path
    records: tuple[FileRecord, ...] = ()
    directories_scanned: int = 0
    errors: tuple[ScanError, ...] = ()
    candidate_paths: frozenset[Path] = frozenset()


@dataclass
class _ScanAccumulator:
    workspace_root: Path
    records: dict[Path, FileRecord] = field(default_factory=dict)
    errors: list[ScanError] = field(default_factory=list)
    candidate_paths: set[Path] = field(default_factory=set)
    directories_scanned: int = 0

    def add_error(self, path: Path, message: str) -> None:
        logger.warning("Scan error at %s: %s", path, message)
        self.errors.append(ScanError(path=path, message=message))

    def offer(self, origin_path: Path, snapshot_path: Path, snapshot_mtime_ns: int) -> None:
        """Keep the candidate unless a newer snapshot for the same origin is known."""
        existing = self.records.get(origin_path)
        if existing is not None and existing.deletion_time_ns >= snapshot_mtime_ns:
            return
        self.records[origin_path] = FileRecord(
            origin_path=origin_path,
            relative_path=origin_path.relative_to(self.workspace_root),
            deletion_time_ns=snapshot_mtime_ns,
            backup_snapshot_path=snapshot_path,
        )
        logger.debug("Deleted file candidate %s (snapshot %s)", origin_path, snapshot_path)

    def freeze(self) -> ScanResult:
        return ScanResult(
            workspace_root=self.workspace_root,
            records=tuple(self.records.values()),
            directories_scanned=self.directories_scanned,
            errors=tuple(self.errors),
            candidate_paths=frozenset(self.candidate_paths),
        )


def _accept_origin(acc: _ScanAccumulator, raw_origin: Path) -> Path | None:
    """Return the normalized origin when it is inside the workspace and gone.

    Origins with an embedded NUL can never exist on disk and are dropped.
    """
    if "\x00" in str(raw_origin):
        return None
    origin = normalize_absolute(raw_origin)
    if not is_path_in_workspace(origin, acc.workspace_root):
        return None
    acc.candidate_paths.add(origin)
    if path_exists(origin):
        return None
    return origin


def _load_metadata(acc: _ScanAccumulator, marker_path: Path) -> BackupMetadata | None:
    metadata = BackupMetadata.from_json(read_json_safe(marker_path))
    if metadata is None:
        acc.add_error(marker_path, "unreadable or malformed metadata marker")
    return metadata


def _process_marked_directory(acc: _ScanAccumulator, directory: Path, resource: str, entries: list[ProbeEntry]) -> None:
    origin = _accept_origin(acc, Path(normalize_resource_uri(resource)))
    if origin is None:
        return
    snapshot = newest_snapshot(directory, entries)
    if snapshot is None:
        return
    acc.offer(origin, *snapshot)


def _process_unmarked_directory(acc: _ScanAccumulator, directory: Path, entries: list[ProbeEntry]) -> None:
    """Best-effort fallback for history directories without a usable marker."""
    snapshot = newest_snapshot(directory, entries)
    if snapshot is None:
        return
    snapshot_path, snapshot_mtime_ns = snapshot
    raw_origin = extract_origin_from_snapshot(snapshot_path, acc.workspace_root)
    if raw_origin is None:
        acc.add_error(snapshot_path, "snapshot could not be read")
        return
    origin = _accept_origin(acc, raw_origin)
    if origin is None:
        return
    acc.offer(origin, snapshot_path, snapshot_mtime_ns)


def _process_history_entry(acc: _ScanAccumulator, directory: Path, *, allow_fallback: bool) -> list[ProbeEntry] | None:
    """Inspect one directory for snapshots; return its listing for further walking."""
    acc.directories_scanned += 1
    entries, error = list_directory_safe(directory)
    if error is not None:
        acc.add_error(directory, f"cannot list directory: {error}")
        return None

    has_marker = any(entry.is_file and entry.name == ENTRIES_JSON_FILENAME for entry in entries)
    if has_marker:
        metadata = _load_metadata(acc, directory / ENTRIES_JSON_FILENAME)
        if metadata is None:
            return entries
        if metadata.resource is not None:
            _process_marked_directory(acc, directory, metadata.resource, entries)
            return entries
        allow_fallback = True

    if allow_fallback:
        _process_unmarked_directory(acc, directory, entries)
    return entries


def _scan_history_directory(acc: _ScanAccumulator, root: Path) -> None:
    """Treat every immediate child directory of ``root`` as one file's history."""
    entries, error = list_directory_safe(root)
    if error is not None:
        acc.add_error(root, f"cannot list backup root: {error}")
        return
    for entry in entries:
        if entry.is_dir:
            _process_history_entry(acc, entry.path, allow_fallback=True)


def _scan_backup_tree(acc: _ScanAccumulator, directory: Path, depth: int, max_depth: int) -> None:
    """Recursively visit ``directory``; only marked directories yield records."""
    if depth > max_depth:
        return
    entries = _process_history_entry(acc, directory, allow_fallback=False)
    if entries is None:
        return
    for entry in entries:
        if entry.is_dir:
            _scan_backup_tree(acc, entry.path, depth + 1, max_depth)


def _scan_root(acc: _ScanAccumulator, root: BackupRoot, max_depth: int) -> None:
    try:
        exists = stat.S_ISDIR(root.path.stat().st_mode)
    except (FileNotFoundError, NotADirectoryError):
        exists = False
    except (OSError, ValueError) as exc:
        acc.add_error(root.path, f"cannot access backup root: {exc}")
        return
    logger.info("Scanning backup root %s (%s): %s", root.path, root.kind.value, "found" if exists else "not found")
    if not exists:
        return
    try:
        if root.kind is RootKind.HISTORY_DIRECTORY:
            _scan_history_directory(acc, root.path)
        else:
            _scan_backup_tree(acc, root.path, 0, max_depth)
    except (OSError, RecursionError, ValueError) as exc:
        acc.add_error(root.path, f"scan aborted: {exc}")


def discover_deleted_files(
    workspace_root: Path,
    roots: Iterable[BackupRoot],
    *,
    max_depth: int = MAX_SCAN_DEPTH,
) -> ScanResult:
    """Find deleted files of ``workspace_root`` across ``roots``.

    Roots are walked in the given order. When the same origin appears more than
    once, the candidate with the newer snapshot wins. Never raises for
    unreadable storage: problems land in ``ScanResult.errors``.
    """
    acc = _ScanAccumulator(workspace_root=normalize_absolute(workspace_root))
    for root in roots:
        _scan_root(acc, root, max_depth)
    result = acc.freeze()
    logger.info(
        "Discovery for %s: %d deleted file(s), %d director(ies) scanned, %d error(s)",
        result.workspace_root,
        len(result.records),
        result.directories_scanned,
        len(result.errors),
    )
    return result


def discover_workspaces(
    workspace_roots: Iterable[Path],
    roots_for: Callable[[Path], list[BackupRoot]],
    *,
    max_depth: int = MAX_SCAN_DEPTH,
) -> list[ScanResult]:
    """Run one independent pass per workspace folder, in order."""
    return [
        discover_deleted_files(workspace_root, roots_for(workspace_root), max_depth=max_depth)
        for workspace_root in workspace_roots
    ]


__all__ = [
    "MAX_SCAN_DEPTH",
    "ScanError",
    "BackupMetadata",
    "ScanResult",
    "discover_deleted_files",
    "discover_workspaces",
]
