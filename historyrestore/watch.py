"""Cheap change signatures for poll-based discovery refreshes.

A signature digests the stat state of every backup-root directory (new
snapshots touch their directory's mtime) plus the existence of every origin
path the last pass considered. Callers compare signatures and re-run
discovery only when they differ.
"""

from __future__ import annotations

import hashlib
import os
import stat
from collections.abc import Iterable
from pathlib import Path

from .locations import BackupRoot


def _update_digest(digest, token: str) -> None:
    # NUL-separated so adjacent tokens cannot run together.
    digest.update(token.encode("utf-8", errors="surrogateescape"))
    digest.update(b"\0")


def _directory_state(path: Path) -> tuple[str, int]:
    """Return ``(state, mtime_ns)`` for a backup directory.

    ``state`` is ``"dir"``, ``"other"`` (something that is not a directory),
    ``"missing"`` or ``"error"``. Adding or removing a snapshot or history
    directory moves the parent directory's mtime, so the pair changes whenever
    a rescan could find something new.
    """
    try:
        st = path.stat()
    except (FileNotFoundError, NotADirectoryError):
        return ("missing", 0)
    except (OSError, ValueError):
        return ("error", 0)
    return ("dir" if stat.S_ISDIR(st.st_mode) else "other", st.st_mtime_ns)


def _walk_directory_stats(digest, directory: Path, depth: int, max_depth: int) -> None:
    """Digest ``directory`` and its subdirectories' stat state, sorted by name."""
    if depth > max_depth:
        return
    try:
        with os.scandir(directory) as entries:
            subdirs = sorted(
                (Path(entry.path) for entry in entries if entry.is_dir(follow_symlinks=False)),
                key=lambda p: p.name,
            )
    except OSError:
        _update_digest(digest, f"children_error:{directory}")
        return
    for subdir in subdirs:
        state, mtime_ns = _directory_state(subdir)
        _update_digest(digest, f"sub:{subdir}:{state}:{mtime_ns}")
        if state == "dir":
            _walk_directory_stats(digest, subdir, depth + 1, max_depth)


def build_discovery_watch_signature(
    roots: Iterable[BackupRoot],
    candidate_paths: Iterable[Path],
    max_depth: int,
) -> str:
    """Build a digest that changes when a new discovery pass could differ."""
    digest = hashlib.blake2b(digest_size=20)

    for root in roots:
        state, mtime_ns = _directory_state(root.path)
        _update_digest(digest, f"root:{root.kind.value}:{root.path}:{state}:{mtime_ns}")
        if state == "dir":
            _walk_directory_stats(digest, root.path, 1, max_depth)

    for path in sorted(candidate_paths, key=str):
        _update_digest(digest, f"origin:{path}:{1 if os.path.lexists(path) else 0}")

    return digest.hexdigest()


__all__ = ["build_discovery_watch_signature"]
