"""Snapshot loading, sanitization, and syntax highlighting for previews.

Snapshots carry no file extension of their own, so the lexer is picked from
the record's origin filename.
"""

from __future__ import annotations

import re
from pathlib import Path

from pygments import highlight as pygments_highlight
from pygments.formatters import TerminalFormatter
from pygments.lexers import TextLexer, guess_lexer_for_filename
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from .deleted_tree.types import FileRecord

TOOLTIP_PREVIEW_LINES = 10
DEFAULT_STYLE = "monokai"

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_FORMATTERS: dict[str, TerminalFormatter] = {}


class PreviewError(Exception):
    pass


def read_text(path: Path) -> str:
    for encoding in ("utf-8", "utf-8-sig", "latin-1"):
        try:
            return path.read_text(encoding=encoding)
        except UnicodeDecodeError:
            continue
    return path.read_bytes().decode("utf-8", errors="replace")


def sanitize_terminal_text(source: str) -> str:
    """Escape terminal control bytes to avoid side effects (bell, cursor moves, etc.)."""
    if _CONTROL_RE.search(source) is None:
        return source

    out: list[str] = []
    for ch in source:
        code = ord(ch)
        if ch in {"\n", "\r", "\t"}:
            out.append(ch)
            continue
        # C0 controls + DEL + C1 controls.
        if code < 32 or code == 127 or 0x80 <= code <= 0x9F:
            out.append(f"\\x{code:02x}")
            continue
        out.append(ch)
    return "".join(out)


def _normalize_style(style: str) -> str:
    try:
        get_style_by_name(style)
    except ClassNotFound:
        return DEFAULT_STYLE
    return style


def _formatter_for_style(style: str) -> TerminalFormatter:
    formatter = _FORMATTERS.get(style)
    if formatter is None:
        formatter = TerminalFormatter(style=style)
        _FORMATTERS[style] = formatter
    return formatter


def colorize(source: str, origin_path: Path, style: str = DEFAULT_STYLE) -> str:
    """Highlight ``source`` as if it were ``origin_path``; plain text lexer on no match."""
    try:
        lexer = guess_lexer_for_filename(origin_path.name, source)
    except ClassNotFound:
        lexer = TextLexer()
    return pygments_highlight(source, lexer, _formatter_for_style(_normalize_style(style)))


def load_snapshot_text(record: FileRecord) -> str:
    """Read and sanitize the snapshot text behind ``record``."""
    if record.backup_snapshot_path is None:
        raise PreviewError(f"No backup available for {record.relative_path}")
    try:
        return sanitize_terminal_text(read_text(record.backup_snapshot_path))
    except OSError as exc:
        raise PreviewError(f"Cannot read backup file {record.backup_snapshot_path}: {exc}") from exc


def preview_lines(record: FileRecord, limit: int = TOOLTIP_PREVIEW_LINES) -> list[str]:
    """Return the first ``limit`` snapshot lines, or ``[]`` when unreadable."""
    try:
        text = load_snapshot_text(record)
    except PreviewError:
        return []
    return text.splitlines()[:limit]


def render_snapshot(
    record: FileRecord,
    style: str = DEFAULT_STYLE,
    no_color: bool = False,
    max_lines: int | None = None,
) -> str:
    """Return the snapshot text, optionally truncated and colorized."""
    text = load_snapshot_text(record)
    if max_lines is not None:
        text = "".join(text.splitlines(keepends=True)[:max_lines])
    if no_color:
        return text
    return colorize(text, record.origin_path, style)


__all__ = [
    "TOOLTIP_PREVIEW_LINES",
    "PreviewError",
    "read_text",
    "sanitize_terminal_text",
    "colorize",
    "load_snapshot_text",
    "preview_lines",
    "render_snapshot",
]
