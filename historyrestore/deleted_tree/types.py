"""Domain datatypes for deleted file/folder records."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

EPOCH_ZERO_NS = 0


def _ns_to_datetime(value_ns: int) -> datetime:
    return datetime.fromtimestamp(value_ns / 1_000_000_000, tz=timezone.utc)


@dataclass(frozen=True)
class FileRecord:
    """A deleted file backed by one local-history snapshot.

    ``deletion_time_ns`` is the snapshot's mtime, a proxy for when the file
    went away. A record without ``backup_snapshot_path`` cannot be restored.
    """

    origin_path: Path
    relative_path: Path
    deletion_time_ns: int
    backup_snapshot_path: Path | None = None

    @property
    def name(self) -> str:
        return self.relative_path.name

    @property
    def is_directory(self) -> bool:
        return False

    @property
    def deletion_time(self) -> datetime:
        return _ns_to_datetime(self.deletion_time_ns)


@dataclass(frozen=True)
class FolderRecord:
    """A synthetic folder inferred from deleted files beneath it.

    ``deletion_time_ns`` is the newest time among all descendants.
    """

    origin_path: Path
    relative_path: Path
    deletion_time_ns: int = EPOCH_ZERO_NS
    children: tuple["DeletedRecord", ...] = ()

    @property
    def name(self) -> str:
        return self.relative_path.name

    @property
    def is_directory(self) -> bool:
        return True

    @property
    def deletion_time(self) -> datetime:
        return _ns_to_datetime(self.deletion_time_ns)


DeletedRecord = FolderRecord | FileRecord


def iter_records(forest: Iterable[DeletedRecord]) -> Iterator[DeletedRecord]:
    """Yield every node in pre-order, parents before their children."""
    for record in forest:
        yield record
        if isinstance(record, FolderRecord):
            yield from iter_records(record.children)


def iter_file_records(forest: Iterable[DeletedRecord]) -> Iterator[FileRecord]:
    """Yield only the file leaves of ``forest``."""
    for record in iter_records(forest):
        if isinstance(record, FileRecord):
            yield record


def find_record(forest: Iterable[DeletedRecord], relative_path: Path | str) -> DeletedRecord | None:
    """Return the node whose relative path equals ``relative_path``."""
    target = Path(relative_path)
    for record in iter_records(forest):
        if record.relative_path == target:
            return record
    return None


__all__ = [
    "EPOCH_ZERO_NS",
    "FileRecord",
    "FolderRecord",
    "DeletedRecord",
    "iter_records",
    "iter_file_records",
    "find_record",
]
