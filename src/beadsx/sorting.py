from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from .config import DEFAULT_RECENT_WINDOW_MINUTES, validate_recent_window_minutes
from .types import EPOCH, SORT_MODES, Issue, SortMode, parse_timestamp

log = logging.getLogger(__name__)


def _as_utc(now: datetime | None) -> datetime:
    # Naive values are taken as UTC, matching parse_timestamp.
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _ts(value: str | None) -> float:
    dt = parse_timestamp(value)
    return (dt or EPOCH).timestamp()


def _default_key(issue: Issue) -> tuple[int, float]:
    # Non-closed by priority, then closed by most recently closed.
    if issue.is_closed:
        return (1, -_ts(issue.closed_at))
    return (0, issue.priority_rank)


def _recent_key(issue: Issue) -> tuple[int, int, float]:
    if issue.issue_type == "epic":
        return (0, 0, -_ts(issue.updated_at))
    return (1, *_default_key(issue))


def sort_issues(issues: Sequence[Issue], mode: SortMode = "default") -> list[Issue]:
    """Return a new, stably sorted list. ``issues`` is left untouched."""
    if mode not in SORT_MODES:
        raise ValueError(f"unknown sort mode {mode!r}; expected one of: {', '.join(SORT_MODES)}")
    key = _recent_key if mode == "recent" else _default_key
    return sorted(issues, key=key)


def sort_mode_for_filter(filter_mode: str) -> SortMode:
    return "recent" if filter_mode == "recent" else "default"


def filter_recent(
    issues: Sequence[Issue],
    window_minutes: int | float = DEFAULT_RECENT_WINDOW_MINUTES,
    *,
    now: datetime | None = None,
) -> list[Issue]:
    """Keep non-closed issues and issues closed within the window (inclusive)."""
    minutes, warning = validate_recent_window_minutes(window_minutes)
    if warning:
        log.warning(warning)
    now = _as_utc(now)
    cutoff = now - timedelta(minutes=minutes)

    kept: list[Issue] = []
    for issue in issues:
        if not issue.is_closed:
            kept.append(issue)
            continue
        if not issue.closed_at:
            log.warning("Closed issue %s has no closed_at timestamp", issue.id)
            continue
        closed = parse_timestamp(issue.closed_at)
        if closed is None:
            log.warning("Issue %s has invalid closed_at: %r", issue.id, issue.closed_at)
            continue
        if closed >= cutoff:
            kept.append(issue)
    return kept


def format_time_ago(value: str | None, *, now: datetime | None = None) -> str:
    """``"5m ago"``-style age; empty for invalid or future timestamps."""
    dt = parse_timestamp(value)
    if dt is None:
        return ""
    now = _as_utc(now)
    diff = (now - dt).total_seconds()
    if diff < 0:
        return ""

    seconds = int(diff)
    minutes = seconds // 60
    hours = seconds // 3600
    days = seconds // 86400

    if seconds < 2:
        return "just now"
    if seconds < 60:
        return f"{seconds}s ago"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "yesterday"
    return f"{days}d ago"


def truncate_title(title: str, max_len: int = 60) -> str:
    if max_len < 1 or len(title) <= max_len:
        return title
    if max_len == 1:
        return "…"
    return title[: max_len - 1].rstrip() + "…"


def short_id(issue_id: str) -> str:
    """``"beadsx-123"`` -> ``"123"``."""
    if not issue_id:
        return ""
    return issue_id.rsplit("-", 1)[-1]
