"""Put deleted files and folders back from their newest snapshot.

Single-file restoration raises a ``RestoreError`` subclass on failure. Folder
and batch restoration keep going past failing entries, leave every success on
disk, and report counts; folder restoration raises ``FolderRestoreError`` once
the whole subtree has been attempted if anything failed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .deleted_tree.types import DeletedRecord, FileRecord, FolderRecord

logger = logging.getLogger(__name__)

NO_BACKUP_REASON = "no backup available"


class RestoreError(Exception):
    """Base class for restoration failures."""


class NoBackupAvailableError(RestoreError):
    """The file record has no snapshot to restore from."""

    def __init__(self, record: FileRecord) -> None:
        super().__init__(f"Cannot restore {record.relative_path}: {NO_BACKUP_REASON}")
        self.record = record


class InvalidRecordError(RestoreError):
    """The value passed in is not the expected kind of deleted record."""


class SnapshotReadError(RestoreError):
    """The backup snapshot could not be read."""


class RestoreWriteError(RestoreError):
    """The origin path or one of its parent directories could not be written."""


@dataclass(frozen=True)
class RestoreFailure:
    """One entry that could not be restored, with the reason text preserved."""

    relative_path: Path
    reason: str


@dataclass(frozen=True)
class RestoreOutcome:
    """Aggregate counts for a folder subtree."""

    restored: int = 0
    failed: int = 0
    failures: tuple[RestoreFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return self.failed == 0


class FolderRestoreError(RestoreError):
    """Some entries under a folder failed; successes stay on disk."""

    def __init__(self, record: FolderRecord, outcome: RestoreOutcome) -> None:
        super().__init__(
            f"Restored {outcome.restored} items in {record.relative_path}, "
            f"but {outcome.failed} items failed to restore"
        )
        self.record = record
        self.outcome = outcome

    @property
    def restored(self) -> int:
        return self.outcome.restored

    @property
    def failed(self) -> int:
        return self.outcome.failed


@dataclass(frozen=True)
class BatchRestoreResult:
    """Outcome of restoring an unrelated selection of nodes."""

    restored: int = 0
    failures: tuple[RestoreFailure, ...] = ()

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures


class LocalFilesystem:
    """Host filesystem primitives used by restoration."""

    def make_directory(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def read_bytes(self, path: Path) -> bytes:
        return path.read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> None:
        path.write_bytes(data)


_LOCAL_FILESYSTEM = LocalFilesystem()


def _relative_path_of(record: object) -> Path:
    return getattr(record, "relative_path", None) or Path(str(record))


@dataclass
class _RestoreCounter:
    restored: int = 0
    failures: list[RestoreFailure] = field(default_factory=list)

    def fail(self, record: DeletedRecord, exc: Exception) -> None:
        relative_path = _relative_path_of(record)
        logger.warning("Failed to restore %s: %s", relative_path, exc)
        self.failures.append(RestoreFailure(relative_path=relative_path, reason=str(exc)))

    def outcome(self) -> RestoreOutcome:
        return RestoreOutcome(restored=self.restored, failed=len(self.failures), failures=tuple(self.failures))


def can_restore(record: DeletedRecord) -> tuple[bool, str | None]:
    """Pre-flight check without I/O: ``(restorable, reason)``."""
    if isinstance(record, FileRecord):
        if record.backup_snapshot_path is None:
            return False, NO_BACKUP_REASON
        return True, None
    if isinstance(record, FolderRecord):
        if record.children and not any(can_restore(child)[0] for child in record.children):
            return False, "no restorable items in folder"
        return True, None
    return False, f"not a deleted record: {type(record).__name__}"


def restore_file(record: FileRecord, *, filesystem: LocalFilesystem | None = None) -> None:
    """Write the snapshot content of ``record`` back to its origin path."""
    if not isinstance(record, FileRecord):
        raise InvalidRecordError(f"Expected a file record, got {type(record).__name__}")
    if record.backup_snapshot_path is None:
        raise NoBackupAvailableError(record)
    fs = filesystem or _LOCAL_FILESYSTEM

    try:
        fs.make_directory(record.origin_path.parent)
    except FileExistsError:
        pass
    except (OSError, ValueError) as exc:
        raise RestoreWriteError(f"Cannot create parent directory for {record.relative_path}: {exc}") from exc

    try:
        content = fs.read_bytes(record.backup_snapshot_path)
    except (OSError, ValueError) as exc:
        raise SnapshotReadError(f"Failed to read backup file {record.backup_snapshot_path}: {exc}") from exc

    try:
        fs.write_bytes(record.origin_path, content)
    except (OSError, ValueError) as exc:
        raise RestoreWriteError(f"Failed to write {record.origin_path}: {exc}") from exc
    logger.info("Restored file %s from %s", record.relative_path, record.backup_snapshot_path)


def _restore_folder_into(record: FolderRecord, counter: _RestoreCounter, fs: LocalFilesystem) -> None:
    try:
        fs.make_directory(record.origin_path)
        logger.info("Created directory %s", record.relative_path)
    except FileExistsError:
        pass
    except (OSError, ValueError) as exc:
        counter.fail(record, RestoreWriteError(f"Cannot create directory {record.origin_path}: {exc}"))

    for child in record.children:
        if isinstance(child, FolderRecord):
            _restore_folder_into(child, counter, fs)
            continue
        try:
            restore_file(child, filesystem=fs)
        except RestoreError as exc:
            counter.fail(child, exc)
            continue
        counter.restored += 1


def restore_folder(record: FolderRecord, *, filesystem: LocalFilesystem | None = None) -> RestoreOutcome:
    """Recreate ``record`` and everything beneath it.

    Only files count toward ``restored``. Raises ``FolderRestoreError`` after
    the full subtree was attempted when at least one entry failed.
    """
    if not isinstance(record, FolderRecord):
        raise InvalidRecordError(f"Expected a folder record, got {type(record).__name__}")
    counter = _RestoreCounter()
    _restore_folder_into(record, counter, filesystem or _LOCAL_FILESYSTEM)
    outcome = counter.outcome()
    if not outcome.ok:
        raise FolderRestoreError(record, outcome)
    logger.info("Restored folder %s with %d file(s)", record.relative_path, outcome.restored)
    return outcome


def restore_record(record: DeletedRecord, *, filesystem: LocalFilesystem | None = None) -> RestoreOutcome:
    """Restore either kind of node; files report ``RestoreOutcome(restored=1)``."""
    if isinstance(record, FolderRecord):
        return restore_folder(record, filesystem=filesystem)
    if isinstance(record, FileRecord):
        restore_file(record, filesystem=filesystem)
        return RestoreOutcome(restored=1)
    raise InvalidRecordError(f"Not a deleted record: {record!r}")


def restore_batch(records: Iterable[DeletedRecord], *, filesystem: LocalFilesystem | None = None) -> BatchRestoreResult:
    """Restore each selected node independently, in order.

    ``restored`` counts selected nodes that restored cleanly; a folder with any
    failing descendant is one failure whose reason names its counts.
    """
    restored = 0
    failures: list[RestoreFailure] = []
    for record in records:
        try:
            restore_record(record, filesystem=filesystem)
        except RestoreError as exc:
            relative_path = _relative_path_of(record)
            logger.warning("Failed to restore %s: %s", relative_path, exc)
            failures.append(RestoreFailure(relative_path=relative_path, reason=str(exc)))
            continue
        restored += 1
    return BatchRestoreResult(restored=restored, failures=tuple(failures))


__all__ = [
    "NO_BACKUP_REASON",
    "RestoreError",
    "NoBackupAvailableError",
    "InvalidRecordError",
    "SnapshotReadError",
    "RestoreWriteError",
    "FolderRestoreError",
    "RestoreFailure",
    "RestoreOutcome",
    "BatchRestoreResult",
    "LocalFilesystem",
    "can_restore",
    "restore_file",
    "restore_folder",
    "restore_record",
    "restore_batch",
]
