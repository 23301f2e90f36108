"""Plain-text and JSON renderings of a deleted-file forest."""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from .deleted_tree.types import DeletedRecord, FileRecord, FolderRecord, iter_file_records
from .discovery import ScanError


@dataclass(frozen=True)
class TreeTheme:
    """Semantic ANSI palette used by the tree renderer."""

    reset: str
    marker: str
    folder: str
    file: str
    time: str
    warning: str


COLOR_THEME = TreeTheme(
    reset="\033[0m",
    marker="\033[38;5;44m",
    folder="\033[1;34m",
    file="\033[38;5;252m",
    time="\033[2;38;5;250m",
    warning="\033[38;5;214m",
)

PLAIN_THEME = TreeTheme(reset="", marker="", folder="", file="", time="", warning="")

EXISTS_SUFFIX = " (EXISTS - might not be truly deleted)"
BACKUP_MISSING_SUFFIX = " (BACKUP MISSING)"
NO_BACKUP_PATH_SUFFIX = " (NO BACKUP PATH)"


def format_time(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def file_status_suffix(record: FileRecord) -> str:
    """Warnings for records whose state moved since discovery ran."""
    suffix = ""
    if os.path.lexists(record.origin_path):
        suffix += EXISTS_SUFFIX
    if record.backup_snapshot_path is None:
        suffix += NO_BACKUP_PATH_SUFFIX
    elif not record.backup_snapshot_path.exists():
        suffix += BACKUP_MISSING_SUFFIX
    return suffix


def _count_files(record: FolderRecord) -> int:
    return sum(1 for _ in iter_file_records(record.children))


def render_forest(forest: Sequence[DeletedRecord], theme: TreeTheme = PLAIN_THEME) -> list[str]:
    """Render ``forest`` as indented rows, folders marked with a trailing slash."""
    rows: list[str] = []

    def walk(records: Sequence[DeletedRecord], depth: int) -> None:
        indent = "  " * depth
        for record in records:
            stamp = f"{theme.time}{format_time(record.deletion_time)}{theme.reset}"
            if isinstance(record, FolderRecord):
                count = _count_files(record)
                rows.append(
                    f"{indent}{theme.marker}▾ {theme.reset}{theme.folder}{record.name}/{theme.reset}"
                    f"  {count} file(s), latest {stamp}"
                )
                walk(record.children, depth + 1)
                continue
            warning = file_status_suffix(record)
            warning_text = f"{theme.warning}{warning}{theme.reset}" if warning else ""
            rows.append(f"{indent}  {theme.file}{record.name}{theme.reset}  {stamp}{warning_text}")

    walk(forest, 0)
    return rows


def render_flat(forest: Sequence[DeletedRecord]) -> list[str]:
    """One ``<time>  <relative path>`` row per deleted file, in tree order."""
    return [
        f"{format_time(record.deletion_time)}  {record.relative_path.as_posix()}"
        for record in iter_file_records(forest)
    ]


def record_to_json(record: DeletedRecord) -> dict[str, object]:
    data: dict[str, object] = {
        "originPath": str(record.origin_path),
        "relativePath": record.relative_path.as_posix(),
        "isDirectory": record.is_directory,
        "deletionTime": record.deletion_time.isoformat(),
    }
    if isinstance(record, FolderRecord):
        data["children"] = [record_to_json(child) for child in record.children]
    else:
        data["backupSnapshotPath"] = str(record.backup_snapshot_path) if record.backup_snapshot_path else None
    return data


def forest_to_json(forest: Sequence[DeletedRecord], errors: Sequence[ScanError] = ()) -> dict[str, object]:
    return {
        "items": [record_to_json(record) for record in forest],
        "errors": [{"path": str(error.path), "message": error.message} for error in errors],
    }


__all__ = [
    "TreeTheme",
    "COLOR_THEME",
    "PLAIN_THEME",
    "format_time",
    "file_status_suffix",
    "render_forest",
    "render_flat",
    "record_to_json",
    "forest_to_json",
]
