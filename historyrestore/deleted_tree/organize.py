"""Fold flat deleted-file records into an ordered folder/file forest."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

from .types import EPOCH_ZERO_NS, DeletedRecord, FileRecord, FolderRecord

_WORKSPACE_ROOT = Path(".")


def _is_root_dir(relative_dir: Path) -> bool:
    # Path("") normalizes to Path(".")
    return relative_dir == _WORKSPACE_ROOT


def ancestor_dirs(relative_path: Path) -> list[Path]:
    """Return the parent chain of ``relative_path``, nearest first, root excluded."""
    chain: list[Path] = []
    current = relative_path.parent
    while not _is_root_dir(current) and current != current.parent:
        chain.append(current)
        current = current.parent
    return chain


def sort_records(records: Iterable[DeletedRecord]) -> list[DeletedRecord]:
    """Order folders before files, then by case-sensitive basename."""
    return sorted(records, key=lambda record: (not record.is_directory, record.name))


def organize_records(workspace_root: Path, records: Sequence[FileRecord]) -> tuple[DeletedRecord, ...]:
    """Build the top-level forest for ``records``.

    Every nested record gets synthetic ``FolderRecord`` ancestors. Folder times
    are the max over their children, computed in a separate pass once every
    node is attached, deepest folders first.
    """
    if not records:
        return ()

    folder_paths: set[Path] = set()
    for record in records:
        folder_paths.update(ancestor_dirs(record.relative_path))

    # Attachment: children by parent folder path; None stands for the forest.
    files_by_parent: dict[Path | None, list[FileRecord]] = {}
    for record in records:
        parent = record.relative_path.parent
        key = None if _is_root_dir(parent) else parent
        files_by_parent.setdefault(key, []).append(record)

    subfolders_by_parent: dict[Path | None, list[Path]] = {}
    for folder_path in folder_paths:
        parent = folder_path.parent
        key = parent if parent in folder_paths else None
        subfolders_by_parent.setdefault(key, []).append(folder_path)

    # Aggregation: deepest folders first so their children are already final.
    built: dict[Path, FolderRecord] = {}
    for folder_path in sorted(folder_paths, key=lambda path: len(path.parts), reverse=True):
        children: list[DeletedRecord] = list(files_by_parent.get(folder_path, ()))
        children.extend(built[path] for path in subfolders_by_parent.get(folder_path, ()))
        deletion_time_ns = max((child.deletion_time_ns for child in children), default=EPOCH_ZERO_NS)
        built[folder_path] = FolderRecord(
            origin_path=workspace_root / folder_path,
            relative_path=folder_path,
            deletion_time_ns=max(EPOCH_ZERO_NS, deletion_time_ns),
            children=tuple(sort_records(children)),
        )

    top_level: list[DeletedRecord] = list(files_by_parent.get(None, ()))
    top_level.extend(built[path] for path in subfolders_by_parent.get(None, ()))
    return tuple(sort_records(top_level))


__all__ = [
    "ancestor_dirs",
    "sort_records",
    "organize_records",
]
