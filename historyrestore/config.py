"""Persistent JSON config helpers.

Stores extra backup roots, scan depth, watch timings and the preview style.
All access is defensive: malformed or missing config falls back safely.
"""

from __future__ import annotations

import json
from pathlib import Path

from platformdirs import user_config_dir

from .discovery import MAX_SCAN_DEPTH
from .refresh import REFRESH_DEBOUNCE_SECONDS

APP_NAME = "history-restore"
CONFIG_FILENAME = "config.json"
CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME

DEFAULT_POLL_SECONDS = 2.0
DEFAULT_STYLE = "monokai"


def load_config() -> dict[str, object]:
    """Load the persisted JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object]) -> None:
    """Persist config data as pretty-printed JSON.

    Any filesystem/serialization error is ignored to keep runtime behavior
    non-fatal when config cannot be written.
    """
    try:
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_PATH.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except Exception:
        pass


def _load_positive_number(key: str, default: float) -> float:
    value = load_config().get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return default
    return float(value)


def load_extra_backup_roots() -> list[Path]:
    """Return user-configured backup roots; non-string and blank entries are dropped."""
    value = load_config().get("extra_backup_roots")
    if not isinstance(value, list):
        return []
    return [Path(item).expanduser() for item in value if isinstance(item, str) and item.strip()]


def save_extra_backup_roots(roots: list[Path]) -> None:
    config = load_config()
    config["extra_backup_roots"] = [str(root) for root in roots]
    save_config(config)


def load_max_scan_depth() -> int:
    """Return the recursive walk bound; only positive integers are accepted."""
    value = load_config().get("max_scan_depth")
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return MAX_SCAN_DEPTH
    return value


def load_debounce_seconds() -> float:
    return _load_positive_number("debounce_seconds", REFRESH_DEBOUNCE_SECONDS)


def load_poll_seconds() -> float:
    return _load_positive_number("poll_seconds", DEFAULT_POLL_SECONDS)


def load_style() -> str:
    """Return the persisted pygments style name, or the default."""
    value = load_config().get("style")
    return value if isinstance(value, str) and value.strip() else DEFAULT_STYLE


def save_style(style: str) -> None:
    config = load_config()
    config["style"] = style
    save_config(config)


__all__ = [
    "APP_NAME",
    "CONFIG_PATH",
    "DEFAULT_POLL_SECONDS",
    "DEFAULT_STYLE",
    "load_config",
    "save_config",
    "load_extra_backup_roots",
    "save_extra_backup_roots",
    "load_max_scan_depth",
    "load_debounce_seconds",
    "load_poll_seconds",
    "load_style",
    "save_style",
]
