"""Command-line front door for history-restore.

Parses CLI options, resolves workspaces and backup roots, runs discovery, and
dispatches to listing, restoring, previewing or watching.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path

from . import config
from .deleted_tree.types import DeletedRecord, FileRecord, find_record
from .locations import BackupRoot, backup_roots
from .preview import PreviewError, render_snapshot
from .refresh import DebouncedRefresher
from .render import COLOR_THEME, PLAIN_THEME, TreeTheme, forest_to_json, render_flat, render_forest
from .restore import restore_batch
from .snapshot import DeletedTreeSnapshot, build_deleted_tree_snapshot
from .watch import build_discovery_watch_signature

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    """argparse type for positive integer values."""
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be >= 1")
    return parsed


def _positive_float(value: str) -> float:
    """argparse type for positive float values."""
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be > 0")
    return parsed


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="history-restore",
        description="Find files deleted from a workspace and restore them from editor local history.",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log progress (-vv for debug output).")
    parser.add_argument(
        "--workspace",
        action="append",
        type=Path,
        default=None,
        help="Workspace folder to scan (repeatable). Defaults to the current directory.",
    )
    parser.add_argument(
        "--extra-root",
        action="append",
        type=Path,
        default=[],
        help="Additional backup directory to walk (repeatable).",
    )
    parser.add_argument(
        "--no-editor-roots",
        action="store_true",
        help="Skip the editor's global storage; scan workspace history and extra roots only.",
    )
    parser.add_argument("--max-depth", type=_positive_int, default=None, help="Recursion bound for backup walks.")

    commands = parser.add_subparsers(dest="command", required=True)

    list_parser = commands.add_parser("list", help="Show deleted files as a folder tree.")
    list_parser.add_argument("--json", action="store_true", help="Print the tree and scan errors as JSON.")
    list_parser.add_argument("--flat", action="store_true", help="One row per deleted file.")
    list_parser.add_argument("--no-color", action="store_true", help="Disable color output even on TTY.")

    restore_parser = commands.add_parser("restore", help="Restore deleted files or folders.")
    restore_parser.add_argument("paths", nargs="*", help="Workspace-relative paths of deleted files or folders.")
    restore_parser.add_argument("--all", action="store_true", help="Restore everything that was found.")

    show_parser = commands.add_parser("show", help="Print the newest snapshot of a deleted file.")
    show_parser.add_argument("path", help="Workspace-relative path of a deleted file.")
    show_parser.add_argument("--style", default=None, help="Pygments style name.")
    show_parser.add_argument("--no-color", action="store_true", help="Disable color output even on TTY.")
    show_parser.add_argument("--lines", type=_positive_int, default=None, help="Only print the first N lines.")

    watch_parser = commands.add_parser("watch", help="Reprint the tree whenever backups or the workspace change.")
    watch_parser.add_argument("--poll-seconds", type=_positive_float, default=None, help="Seconds between checks.")
    watch_parser.add_argument("--no-color", action="store_true", help="Disable color output even on TTY.")

    config_parser = commands.add_parser("config", help="Show or update persisted settings.")
    config_parser.add_argument("--add-root", type=Path, default=None, help="Persist an extra backup root.")
    config_parser.add_argument("--style", default=None, help="Persist the default pygments style.")
    return parser


def _theme(no_color: bool) -> TreeTheme:
    if no_color or not sys.stdout.isatty():
        return PLAIN_THEME
    return COLOR_THEME


def _roots_factory(args: argparse.Namespace) -> Callable[[Path], list[BackupRoot]]:
    extra_roots = [*config.load_extra_backup_roots(), *args.extra_root]

    def roots_for(workspace_root: Path) -> list[BackupRoot]:
        return backup_roots(
            workspace_root,
            extra_roots=extra_roots,
            include_editor_roots=not args.no_editor_roots,
        )

    return roots_for


def _resolve_workspaces(args: argparse.Namespace, default_workspace: Path | None) -> list[Path]:
    raw = args.workspace or [default_workspace if default_workspace is not None else Path.cwd()]
    workspaces: list[Path] = []
    for path in raw:
        if not path.is_dir():
            raise SystemExit(f"Workspace not found: {path}")
        workspaces.append(path.resolve())
    return workspaces


def _build_snapshots(args: argparse.Namespace, workspaces: list[Path], max_depth: int) -> list[DeletedTreeSnapshot]:
    roots_for = _roots_factory(args)
    return [build_deleted_tree_snapshot(workspace, roots_for(workspace), max_depth=max_depth) for workspace in workspaces]


def _report_scan_errors(snapshots: list[DeletedTreeSnapshot]) -> None:
    for snapshot in snapshots:
        for error in snapshot.scan.errors:
            print(f"warning: could not scan {error}", file=sys.stderr)


def _print_forest(snapshots: list[DeletedTreeSnapshot], theme: TreeTheme, flat: bool = False) -> None:
    for snapshot in snapshots:
        if len(snapshots) > 1:
            print(f"{snapshot.workspace_root}:")
        rows = render_flat(snapshot.forest) if flat else render_forest(snapshot.forest, theme)
        if not rows:
            print("No deleted files found.")
        for row in rows:
            print(row)


def _lookup(snapshots: list[DeletedTreeSnapshot], raw_path: str) -> DeletedRecord:
    for snapshot in snapshots:
        candidate = Path(raw_path)
        if candidate.is_absolute():
            if not candidate.is_relative_to(snapshot.workspace_root):
                continue
            candidate = candidate.relative_to(snapshot.workspace_root)
        record = find_record(snapshot.forest, candidate)
        if record is not None:
            return record
    raise SystemExit(f"Not a deleted item: {raw_path}")


def _run_list(args: argparse.Namespace, snapshots: list[DeletedTreeSnapshot]) -> None:
    if args.json:
        payload = [
            {"workspace": str(snapshot.workspace_root), **forest_to_json(snapshot.forest, snapshot.scan.errors)}
            for snapshot in snapshots
        ]
        print(json.dumps(payload if len(payload) > 1 else payload[0], indent=2))
        return
    _print_forest(snapshots, _theme(args.no_color), flat=args.flat)
    _report_scan_errors(snapshots)


def _run_restore(args: argparse.Namespace, snapshots: list[DeletedTreeSnapshot]) -> None:
    if args.all:
        selection = [record for snapshot in snapshots for record in snapshot.forest]
    else:
        if not args.paths:
            raise SystemExit("Nothing selected: pass paths or --all.")
        selection = [_lookup(snapshots, raw_path) for raw_path in args.paths]

    if not selection:
        print("No deleted files found.")
        return

    result = restore_batch(selection)
    for failure in result.failures:
        print(f"Failed to restore {failure.relative_path.as_posix()}: {failure.reason}", file=sys.stderr)
    print(f"Successfully restored {result.restored} item(s)")
    if not result.ok:
        raise SystemExit(1)


def _run_show(args: argparse.Namespace, snapshots: list[DeletedTreeSnapshot]) -> None:
    record = _lookup(snapshots, args.path)
    if not isinstance(record, FileRecord):
        raise SystemExit(f"Not a file: {args.path}")
    style = args.style or config.load_style()
    no_color = args.no_color or not sys.stdout.isatty()
    try:
        sys.stdout.write(render_snapshot(record, style=style, no_color=no_color, max_lines=args.lines))
    except PreviewError as exc:
        raise SystemExit(str(exc)) from exc


def run_watch(
    snapshots: list[DeletedTreeSnapshot],
    on_refresh: Callable[[list[DeletedTreeSnapshot]], None],
    *,
    poll_seconds: float,
    debounce_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
    max_polls: int | None = None,
) -> list[DeletedTreeSnapshot]:
    """Poll watch signatures and rebuild after changes settle.

    Returns the latest snapshots once ``max_polls`` ticks elapsed (tests) or
    propagates ``KeyboardInterrupt`` to the caller.
    """
    current = list(snapshots)
    seen = [snapshot.signature for snapshot in current]

    def rebuild() -> None:
        for idx, snapshot in enumerate(current):
            current[idx] = build_deleted_tree_snapshot(
                snapshot.workspace_root,
                snapshot.backup_roots,
                max_depth=snapshot.max_depth,
            )
            seen[idx] = current[idx].signature
        on_refresh(current)

    refresher = DebouncedRefresher(rebuild, debounce_seconds=debounce_seconds, monotonic=monotonic)
    polls = 0
    while max_polls is None or polls < max_polls:
        sleep(poll_seconds)
        polls += 1
        for idx, snapshot in enumerate(current):
            signature = build_discovery_watch_signature(
                snapshot.backup_roots,
                snapshot.scan.candidate_paths,
                snapshot.max_depth,
            )
            if signature != seen[idx]:
                seen[idx] = signature
                logger.debug("Change detected for %s", snapshot.workspace_root)
                refresher.request()
        refresher.poll()
    return current


def _run_watch(args: argparse.Namespace, snapshots: list[DeletedTreeSnapshot]) -> None:
    theme = _theme(args.no_color)

    def on_refresh(updated: list[DeletedTreeSnapshot]) -> None:
        print()
        _print_forest(updated, theme)
        _report_scan_errors(updated)

    on_refresh(snapshots)
    try:
        run_watch(
            snapshots,
            on_refresh,
            poll_seconds=args.poll_seconds or config.load_poll_seconds(),
            debounce_seconds=config.load_debounce_seconds(),
        )
    except KeyboardInterrupt:
        return


def _run_config(args: argparse.Namespace) -> None:
    if args.add_root is not None:
        roots = config.load_extra_backup_roots()
        root = args.add_root.expanduser().resolve()
        if root not in roots:
            config.save_extra_backup_roots([*roots, root])
    if args.style is not None:
        config.save_style(args.style)
    print(f"config: {config.CONFIG_PATH}")
    print(f"extra_backup_roots: {[str(root) for root in config.load_extra_backup_roots()]}")
    print(f"max_scan_depth: {config.load_max_scan_depth()}")
    print(f"poll_seconds: {config.load_poll_seconds()}")
    print(f"debounce_seconds: {config.load_debounce_seconds()}")
    print(f"style: {config.load_style()}")


def main(default_workspace: Path | None = None) -> None:
    """Parse CLI arguments and run one history-restore command.

    ``default_workspace`` is primarily for tests; when omitted the current
    working directory is scanned.
    """
    args = build_parser().parse_args()
    configure_logging(args.verbose)

    if args.command == "config":
        _run_config(args)
        return

    workspaces = _resolve_workspaces(args, default_workspace)
    max_depth = args.max_depth if args.max_depth is not None else config.load_max_scan_depth()
    snapshots = _build_snapshots(args, workspaces, max_depth)

    if args.command == "list":
        _run_list(args, snapshots)
    elif args.command == "restore":
        _run_restore(args, snapshots)
    elif args.command == "show":
        _run_show(args, snapshots)
    elif args.command == "watch":
        _run_watch(args, snapshots)


if __name__ == "__main__":
    main()
