from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from datetime import datetime
from typing import Literal

from rich.console import Console
from rich.text import Text
from rich.tree import Tree

from .sorting import format_time_ago, short_id, truncate_title
from .types import Issue

log = logging.getLogger(__name__)

OUTPUT_CHOICES = ("auto", "plain", "rich")
OutputMode = Literal["plain", "rich"]

STATUS_ICONS = {
    "closed": "✓",
    "in_progress": "●",
    "blocked": "✖",
    "open": "○",
    "tombstone": "🗑",
}
TYPE_ICONS = {
    "bug": "🐛",
    "feature": "💡",
    "epic": "🚀",
    "chore": "🔧",
    "task": "📋",
}
STATUS_STYLES = {
    "closed": "green",
    "in_progress": "cyan",
    "blocked": "red",
    "open": "yellow",
    "tombstone": "dim",
}
UNKNOWN_STATUS_ICON = "?"
UNKNOWN_TYPE_ICON = "❓"


def add_output_mode_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        choices=OUTPUT_CHOICES,
        help="Output mode: auto (default), plain, or rich.",
    )


def _stream_is_tty(stream: object) -> bool:
    probe = getattr(stream, "isatty", None)
    if not callable(probe):
        return False
    try:
        return bool(probe())
    except (OSError, ValueError):
        return False


def resolve_output_mode(requested: str | None = None, *, is_tty: bool | None = None) -> OutputMode:
    selected = (requested or "auto").strip().lower()
    if selected not in OUTPUT_CHOICES:
        expected = ", ".join(OUTPUT_CHOICES)
        raise ValueError(f"invalid --output value {requested!r}; expected one of: {expected}")

    if selected == "auto":
        tty = _stream_is_tty(sys.stdout) if is_tty is None else bool(is_tty)
        return "rich" if tty else "plain"
    return "rich" if selected == "rich" else "plain"


def make_console(mode: OutputMode, *, stderr: bool = False) -> Console:
    return Console(
        file=sys.stderr if stderr else sys.stdout,
        force_terminal=mode == "rich",
        no_color=mode != "rich",
        highlight=False,
    )


def status_icon(status: str) -> str:
    icon = STATUS_ICONS.get(status)
    if icon is None:
        log.warning("Unknown status %r, using unknown icon", status)
        return UNKNOWN_STATUS_ICON
    return icon


def type_icon(issue_type: str) -> str:
    icon = TYPE_ICONS.get(issue_type)
    if icon is None:
        log.warning("Unknown issue_type %r, using unknown icon", issue_type)
        return UNKNOWN_TYPE_ICON
    return icon


def issue_label(
    issue: Issue,
    *,
    short_ids: bool = False,
    collapsed_children: bool = False,
    now: datetime | None = None,
) -> Text:
    display_id = short_id(issue.id) if short_ids else issue.id
    style = STATUS_STYLES.get(issue.status, "magenta")
    label = Text()
    label.append(f"{status_icon(issue.status)} ", style=style)
    label.append(f"{type_icon(issue.issue_type)} ")
    label.append(display_id, style="bold")
    if issue.priority is not None:
        label.append(f" P{issue.priority:g}", style="dim")
    label.append(f" {truncate_title(issue.title)}")
    when = issue.closed_at if issue.is_closed else issue.updated_at
    ago = format_time_ago(when, now=now)
    if ago:
        label.append(f"  {ago}", style="dim")
    if collapsed_children:
        label.append(" …", style="dim")
    return label


def render_issue_tree(
    rows: Sequence[tuple[Issue, int]],
    *,
    expandable_ids: set[str] | frozenset[str] = frozenset(),
    expanded_ids: set[str] | frozenset[str] = frozenset(),
    title: str = "issues",
    short_ids: bool = False,
    now: datetime | None = None,
) -> Tree:
    """Build a rich ``Tree`` from flattened ``(issue, depth)`` rows."""
    tree = Tree(Text(title, style="bold"), guide_style="dim")
    stack: list[Tree] = [tree]
    for issue, depth in rows:
        del stack[depth + 1 :]
        parent = stack[-1]
        collapsed = issue.id in expandable_ids and issue.id not in expanded_ids
        node = parent.add(
            issue_label(issue, short_ids=short_ids, collapsed_children=collapsed, now=now)
        )
        stack.append(node)
    return tree


def status_summary(issues: Sequence[Issue]) -> str:
    total = len(issues)
    open_count = sum(1 for issue in issues if issue.status == "open")
    in_progress = sum(1 for issue in issues if issue.status == "in_progress")
    closed = sum(1 for issue in issues if issue.is_closed)
    return f"{total} issues ({open_count} open, {in_progress} in progress, {closed} closed)"
