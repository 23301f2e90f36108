"""Candidate backup-storage roots for the current platform.

Pure configuration: which directories might hold editor local-history
snapshots, in the fixed order discovery walks them.
"""

from __future__ import annotations

import enum
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_dir

EDITOR_APP_NAME = "Code"
WORKSPACE_SETTINGS_DIR = ".vscode"
WORKSPACE_HISTORY_DIR = "history"
GLOBAL_HISTORY_DIR = "History"

# Relative to the editor's "User" data directory.
_USER_AUXILIARY_DIRS: dict[str, tuple[str, ...]] = {
    "linux": ("workspaceStorage", "globalStorage", "logs", "CachedExtensions"),
    "darwin": ("workspaceStorage", "globalStorage"),
    "win32": ("workspaceStorage", "globalStorage"),
}

# Relative to the home directory; remote-server installs only exist on Linux.
_REMOTE_SERVER_DIRS: dict[str, tuple[tuple[str, ...], ...]] = {
    "linux": (
        (".vscode-server", "data", "User", "History"),
        (".vscode-server", "data", "User", "workspaceStorage"),
    ),
}

# Fallback layout when an explicit home is given (platformdirs ignores it).
_USER_DATA_UNDER_HOME: dict[str, tuple[str, ...]] = {
    "linux": (".config", EDITOR_APP_NAME, "User"),
    "darwin": ("Library", "Application Support", EDITOR_APP_NAME, "User"),
    "win32": ("AppData", "Roaming", EDITOR_APP_NAME, "User"),
}


class RootKind(enum.Enum):
    """How discovery should walk a backup root."""

    # Immediate children are per-file history directories.
    HISTORY_DIRECTORY = "history-directory"
    # Arbitrary nesting; only directories with a metadata marker count.
    BACKUP_TREE = "backup-tree"


@dataclass(frozen=True)
class BackupRoot:
    """One top-level directory discovery treats as a snapshot source."""

    path: Path
    kind: RootKind


def platform_key(platform: str | None = None) -> str:
    """Collapse ``sys.platform`` values onto the keys used in this module."""
    value = platform if platform is not None else sys.platform
    if value.startswith("win"):
        return "win32"
    if value == "darwin":
        return "darwin"
    return "linux"


def editor_user_data_dir(platform: str | None = None, home: Path | None = None) -> Path:
    """Return the editor's ``User`` data directory.

    With no ``home`` override the location comes from ``platformdirs``; with an
    override the conventional per-platform layout under ``home`` is used.
    """
    key = platform_key(platform)
    if home is None and platform is None:
        return Path(user_config_dir(EDITOR_APP_NAME, appauthor=False, roaming=True)) / "User"
    base = home if home is not None else Path.home()
    return base.joinpath(*_USER_DATA_UNDER_HOME[key])


def workspace_history_dir(workspace_root: Path) -> Path:
    """Return the workspace-local history directory."""
    return workspace_root / WORKSPACE_SETTINGS_DIR / WORKSPACE_HISTORY_DIR


def global_history_dir(platform: str | None = None, home: Path | None = None) -> Path:
    """Return the editor's user-global local-history directory."""
    return editor_user_data_dir(platform, home) / GLOBAL_HISTORY_DIR


def auxiliary_backup_dirs(platform: str | None = None, home: Path | None = None) -> list[Path]:
    """Return per-platform storage/log/cache dirs that may retain snapshots."""
    key = platform_key(platform)
    user_dir = editor_user_data_dir(platform, home)
    base_home = home if home is not None else Path.home()
    locations = [user_dir / name for name in _USER_AUXILIARY_DIRS[key]]
    locations.extend(base_home.joinpath(*parts) for parts in _REMOTE_SERVER_DIRS.get(key, ()))
    return locations


def backup_roots(
    workspace_root: Path,
    *,
    platform: str | None = None,
    home: Path | None = None,
    extra_roots: Iterable[Path] = (),
    include_editor_roots: bool = True,
) -> list[BackupRoot]:
    """Return candidate backup roots in walk order.

    Order: workspace-local history, global history, platform auxiliary dirs,
    then ``extra_roots``. ``include_editor_roots=False`` keeps only the
    workspace-local history and ``extra_roots``. Later duplicates of an
    already listed path are dropped. Roots are listed whether or not they exist.
    """
    candidates: list[BackupRoot] = [BackupRoot(workspace_history_dir(workspace_root), RootKind.HISTORY_DIRECTORY)]
    if include_editor_roots:
        candidates.append(BackupRoot(global_history_dir(platform, home), RootKind.BACKUP_TREE))
        candidates.extend(BackupRoot(path, RootKind.BACKUP_TREE) for path in auxiliary_backup_dirs(platform, home))
    candidates.extend(BackupRoot(Path(path).expanduser(), RootKind.BACKUP_TREE) for path in extra_roots)

    seen: set[Path] = set()
    ordered: list[BackupRoot] = []
    for root in candidates:
        if root.path in seen:
            continue
        seen.add(root.path)
        ordered.append(root)
    return ordered


__all__ = [
    "EDITOR_APP_NAME",
    "RootKind",
    "BackupRoot",
    "platform_key",
    "editor_user_data_dir",
    "workspace_history_dir",
    "global_history_dir",
    "auxiliary_backup_dirs",
    "backup_roots",
]
