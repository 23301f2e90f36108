"""Side-effect-free filesystem probes used by discovery.

Every helper here turns I/O failures into absence (``None``, ``False`` or an
empty listing) so callers never have to guard raw ``OSError``s. The one
exception is ``list_directory_safe``, which also hands the error back so the
walk can record it.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote

ENTRIES_JSON_FILENAME = "entries.json"
FILE_SCHEME = "file://"
VSCODE_REMOTE_SCHEME = "vscode-remote://"
SNAPSHOT_MARKER_SCAN_LINES = 10

_REMOTE_RE = re.compile(r"^vscode-remote://[^/]+(/.*)$")
_FILE_MARKER_RE = re.compile(r"file://([^\"'\s]+)")
_DRIVE_PATH_RE = re.compile(r"^/[A-Za-z]:")


@dataclass(frozen=True)
class ProbeEntry:
    """One directory child observed by ``list_directory_safe``."""

    name: str
    path: Path
    is_dir: bool
    is_file: bool


def path_exists(path: Path) -> bool:
    """Return whether anything (file, dir, dangling symlink) sits at ``path``."""
    try:
        return os.path.lexists(path)
    except (OSError, ValueError):
        return False


def safe_stat(path: Path) -> os.stat_result | None:
    """Return ``path.stat()`` or ``None`` on any stat failure."""
    try:
        return path.stat()
    except (OSError, ValueError):
        return None


def safe_mtime_ns(path: Path) -> int | None:
    """Return ``st_mtime_ns`` for ``path`` or ``None`` on stat failure."""
    st = safe_stat(path)
    return None if st is None else int(st.st_mtime_ns)


def list_directory_safe(directory: Path) -> tuple[list[ProbeEntry], OSError | None]:
    """List ``directory`` children sorted by name.

    Returns ``(entries, error)``; ``error`` is set (and ``entries`` empty) when
    the directory itself cannot be listed. Per-child type probes that fail are
    treated as "neither file nor directory".
    """
    entries: list[ProbeEntry] = []
    try:
        with os.scandir(directory) as it:
            for child in it:
                try:
                    is_dir = child.is_dir(follow_symlinks=False)
                except OSError:
                    is_dir = False
                try:
                    is_file = child.is_file(follow_symlinks=False)
                except OSError:
                    is_file = False
                entries.append(ProbeEntry(name=child.name, path=Path(child.path), is_dir=is_dir, is_file=is_file))
    except OSError as exc:
        return [], exc

    entries.sort(key=lambda item: item.name)
    return entries, None


def read_json_safe(path: Path) -> object | None:
    """Parse JSON at ``path``; ``None`` when unreadable or malformed."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None


def normalize_absolute(path: Path) -> Path:
    """Absolutize and collapse ``.``/``..`` without touching the filesystem."""
    return Path(os.path.normpath(os.path.abspath(path)))


def is_path_in_workspace(path: Path, workspace_root: Path) -> bool:
    """Return whether ``path`` lies strictly inside ``workspace_root``.

    Comparison is component-wise on normalized absolute paths, so a sibling
    such as ``/ws2`` does not count as inside ``/ws``. The root itself is not
    inside.
    """
    candidate = normalize_absolute(path)
    root = normalize_absolute(workspace_root)
    if candidate == root:
        return False
    return candidate.is_relative_to(root)


def _strip_drive_slash(raw: str) -> str:
    # file:///c:/x decodes to "/c:/x"
    if os.name == "nt" and _DRIVE_PATH_RE.match(raw):
        return raw[1:]
    return raw


def normalize_resource_uri(resource: str) -> str:
    """Turn an origin-location marker into a plain filesystem path string.

    ``file://`` is stripped, ``vscode-remote://<host>`` loses its host segment,
    and both are percent-decoded. Anything else is returned unchanged.
    """
    if resource.startswith(VSCODE_REMOTE_SCHEME):
        match = _REMOTE_RE.match(resource)
        if match is None:
            return resource
        return _strip_drive_slash(unquote(match.group(1)))
    if resource.startswith(FILE_SCHEME):
        return _strip_drive_slash(unquote(resource[len(FILE_SCHEME):]))
    return resource


def extract_origin_from_snapshot(snapshot_path: Path, workspace_root: Path) -> Path | None:
    """Guess the origin path for a snapshot that has no metadata marker.

    Looks for a ``file://`` marker in the first few lines of the snapshot. If
    none is present, falls back to ``workspace_root / <containing dir name>``.
    Returns ``None`` only when the snapshot cannot be read at all.
    """
    try:
        with snapshot_path.open("r", encoding="utf-8", errors="replace") as handle:
            head = [line for _, line in zip(range(SNAPSHOT_MARKER_SCAN_LINES), handle)]
    except OSError:
        return None

    for line in head:
        if FILE_SCHEME not in line:
            continue
        match = _FILE_MARKER_RE.search(line)
        if match is not None:
            return Path(_strip_drive_slash(unquote(match.group(1))))

    return workspace_root / snapshot_path.parent.name


def newest_snapshot(directory: Path, entries: list[ProbeEntry] | None = None) -> tuple[Path, int] | None:
    """Return ``(path, mtime_ns)`` of the newest regular file in ``directory``.

    The metadata marker is never a snapshot. Ties on ``st_mtime_ns`` go to the
    lexicographically greatest name. Files that cannot be stat'ed are skipped.
    """
    if entries is None:
        entries, error = list_directory_safe(directory)
        if error is not None:
            return None

    best: tuple[int, str, Path] | None = None
    for entry in entries:
        if not entry.is_file or entry.name == ENTRIES_JSON_FILENAME:
            continue
        mtime_ns = safe_mtime_ns(entry.path)
        if mtime_ns is None:
            continue
        key = (mtime_ns, entry.name, entry.path)
        if best is None or key[:2] > best[:2]:
            best = key
    if best is None:
        return None
    return best[2], best[0]


__all__ = [
    "ENTRIES_JSON_FILENAME",
    "FILE_SCHEME",
    "VSCODE_REMOTE_SCHEME",
    "SNAPSHOT_MARKER_SCAN_LINES",
    "ProbeEntry",
    "path_exists",
    "safe_stat",
    "safe_mtime_ns",
    "list_directory_safe",
    "read_json_safe",
    "normalize_absolute",
    "is_path_in_workspace",
    "normalize_resource_uri",
    "extract_origin_from_snapshot",
    "newest_snapshot",
]
