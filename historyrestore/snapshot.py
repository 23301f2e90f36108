"""Snapshot helpers for one workspace's deleted-file forest plus its watch signature."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .discovery import MAX_SCAN_DEPTH, ScanResult, discover_deleted_files
from .locations import BackupRoot
from .watch import build_discovery_watch_signature
from .deleted_tree.organize import organize_records
from .deleted_tree.types import DeletedRecord


@dataclass(frozen=True)
class DeletedTreeSnapshot:
    """Result of one discovery pass plus the signature observed after it."""

    workspace_root: Path
    backup_roots: tuple[BackupRoot, ...]
    max_depth: int
    signature: str
    scan: ScanResult
    forest: tuple[DeletedRecord, ...]


def build_deleted_tree_snapshot(
    workspace_root: Path,
    backup_roots: list[BackupRoot] | tuple[BackupRoot, ...],
    *,
    max_depth: int = MAX_SCAN_DEPTH,
) -> DeletedTreeSnapshot:
    """Run discovery, organize the records, and capture a watch signature."""
    roots = tuple(backup_roots)
    scan = discover_deleted_files(workspace_root, roots, max_depth=max_depth)
    forest = organize_records(scan.workspace_root, scan.records)
    signature = build_discovery_watch_signature(roots, scan.candidate_paths, max_depth)
    return DeletedTreeSnapshot(
        workspace_root=scan.workspace_root,
        backup_roots=roots,
        max_depth=max_depth,
        signature=signature,
        scan=scan,
        forest=forest,
    )


def refresh_deleted_tree_snapshot(
    previous: DeletedTreeSnapshot,
    *,
    force: bool = False,
) -> tuple[DeletedTreeSnapshot, bool]:
    """Rebuild when the watch signature moved (or ``force``).

    Returns ``(snapshot, changed)``; ``previous`` is returned unchanged when
    nothing relevant moved.
    """
    signature = build_discovery_watch_signature(
        previous.backup_roots,
        previous.scan.candidate_paths,
        previous.max_depth,
    )
    if not force and signature == previous.signature:
        return previous, False

    refreshed = build_deleted_tree_snapshot(
        previous.workspace_root,
        previous.backup_roots,
        max_depth=previous.max_depth,
    )
    return refreshed, True


__all__ = [
    "DeletedTreeSnapshot",
    "build_deleted_tree_snapshot",
    "refresh_deleted_tree_snapshot",
]
