"""CLI entry point for bdx: show beads issues as a tree."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.text import Text

from . import __version__
from .config import BeadsConfig, load_config, with_overrides
from .expansion import ExpansionState
from .hierarchy import children_index, visible_rows
from .service import BEADS_DIR, BeadsService
from .sorting import sort_mode_for_filter
from .types import FILTER_MODES, BeadsResult, FilterMode, Issue
from .ui import (
    add_output_mode_argument,
    make_console,
    render_issue_tree,
    resolve_output_mode,
    status_summary,
)

log = logging.getLogger(__name__)

_FILTER_TITLES = {
    "all": "All Issues",
    "open": "Open Issues",
    "ready": "Ready Issues",
    "recent": "Recent Issues",
}


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="bdx", description="Show beads issues as a tree.")
    p.add_argument("workspace", nargs="?", default=None, help="workspace directory (default: cwd)")
    p.add_argument("--filter", dest="filter_mode", choices=FILTER_MODES, default="recent")
    add_output_mode_argument(p)
    p.add_argument("--json", action="store_true", help="print visible rows as JSON")
    p.add_argument("--expand-all", action="store_true", help="expand every parent")
    p.add_argument("--watch", type=float, default=None, metavar="SECONDS", help="refresh periodically")
    p.add_argument("--config", type=Path, default=None, help="config file (default: ~/.config/bdx/config.toml)")
    p.add_argument("--bd-path", default=None, help="path to the bd executable")
    p.add_argument(
        "--no-db",
        dest="use_jsonl_mode",
        action="store_const",
        const=True,
        default=None,
        help="pass --no-db to bd (JSONL-only mode)",
    )
    p.add_argument("--recent-window", type=int, default=None, metavar="MINUTES")
    p.add_argument("--short-ids", action="store_const", const=True, default=None)
    p.add_argument("--allow-fallback", action="store_const", const=True, default=None)
    p.add_argument("-v", "--verbose", action="store_true")
    p.add_argument("--version", action="version", version=f"bdx {__version__}")
    return p


def validate_workspace(path: Path) -> str | None:
    """Return an error message when ``path`` is not a usable directory."""
    try:
        if not path.is_dir():
            if path.exists():
                return f"{path} is not a directory"
            return f"Directory not found: {path}"
    except PermissionError:
        return f"Permission denied accessing {path}"
    if not os.access(path, os.R_OK | os.X_OK):
        return f"Permission denied accessing {path}"
    return None


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _expandable_ids(issues: list[Issue]) -> set[str]:
    children = children_index(issues)
    return {issue.id for issue in issues if children.get(issue.id)}


def _expanded_ids(
    issues: list[Issue],
    filter_mode: FilterMode,
    state: ExpansionState,
    expand_all: bool,
) -> set[str]:
    if expand_all:
        return _expandable_ids(issues)
    return state.refresh(issues, filter_mode)


def _rows_payload(rows: list[tuple[Issue, int]]) -> list[dict]:
    payload = []
    for issue, depth in rows:
        row = issue.to_dict()
        row["depth"] = depth
        payload.append(row)
    return payload


def _view(
    result: BeadsResult[list[Issue]],
    filter_mode: FilterMode,
    expanded: set[str],
    config: BeadsConfig,
) -> tuple[RenderableType, list[tuple[Issue, int]]]:
    issues = result.data
    rows = visible_rows(issues, expanded, sort_mode_for_filter(filter_mode))
    expandable = _expandable_ids(issues)
    tree = render_issue_tree(
        rows,
        expandable_ids=expandable,
        expanded_ids=expanded,
        title=_FILTER_TITLES[filter_mode],
        short_ids=config.short_ids,
    )
    parts: list[RenderableType] = []
    if not result.success:
        parts.append(Text(f"Warning: {result.error}", style="yellow"))
    if issues:
        parts.append(tree)
    else:
        parts.append(Text("(no issues)", style="dim"))
    parts.append(Text(status_summary(issues), style="dim"))
    return Group(*parts), rows


async def _watch(
    service: BeadsService,
    workspace: Path,
    args: argparse.Namespace,
    console: Console,
    state: ExpansionState,
) -> int:
    with Live(console=console, auto_refresh=False) as live:
        while True:
            result = await service.list_filtered(workspace, args.filter_mode)
            expanded = _expanded_ids(result.data, args.filter_mode, state, args.expand_all)
            renderable, _ = _view(result, args.filter_mode, expanded, service.config)
            live.update(renderable, refresh=True)
            await asyncio.sleep(args.watch)


def cmd_show(args: argparse.Namespace) -> int:
    mode = resolve_output_mode(args.output)
    console = make_console(mode)
    err_console = make_console(mode, stderr=True)

    workspace = Path(args.workspace or Path.cwd()).expanduser().resolve()
    problem = validate_workspace(workspace)
    if problem:
        err_console.print(Text(f"Error: {problem}", style="red"))
        return 1

    file_cfg = load_config(args.config)
    if file_cfg.error:
        log.warning("%s; using defaults", file_cfg.error)
    config = with_overrides(
        file_cfg.config,
        command_path=args.bd_path,
        use_jsonl_mode=args.use_jsonl_mode,
        recent_window_minutes=args.recent_window,
        short_ids=args.short_ids,
        allow_fallback_on_broken=args.allow_fallback,
    )

    service = BeadsService(config)
    if not service.is_initialized(workspace):
        err_console.print(
            Text(
                f"Error: No {BEADS_DIR} directory found in {workspace}\n"
                'Run "bd init" to initialize beads in this directory.',
                style="red",
            )
        )
        return 1

    state = ExpansionState(auto_expand_open=config.auto_expand_open)

    if args.watch is not None:
        if args.watch <= 0:
            err_console.print(Text("Error: --watch must be a positive number of seconds", style="red"))
            return 1
        try:
            return asyncio.run(_watch(service, workspace, args, console, state))
        except KeyboardInterrupt:
            return 0

    result = asyncio.run(service.list_filtered(workspace, args.filter_mode))
    if not result.success and not result.data:
        err_console.print(Text(f"Error: {result.error}", style="red"))
        return 1

    expanded = _expanded_ids(result.data, args.filter_mode, state, args.expand_all)
    renderable, rows = _view(result, args.filter_mode, expanded, config)

    if args.json:
        print(json.dumps(_rows_payload(rows), indent=2, ensure_ascii=False))
        if not result.success:
            err_console.print(Text(f"Warning: {result.error}", style="yellow"))
        return 0

    console.print(renderable)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv if argv is not None else sys.argv[1:])
    _configure_logging(args.verbose)
    return cmd_show(args)


if __name__ == "__main__":
    sys.exit(main())
