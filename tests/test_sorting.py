from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from beadsx.sorting import (
    filter_recent,
    format_time_ago,
    short_id,
    sort_issues,
    sort_mode_for_filter,
    truncate_title,
)

from conftest import make_issue

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def _ids(issues) -> list[str]:
    return [issue.id for issue in issues]


def test_default_sort_open_by_priority_then_closed_by_recency() -> None:
    issues = [
        make_issue("closed-old", status="closed", priority=0, closed_at="2025-01-01T00:00:00Z"),
        make_issue("p2", priority=2),
        make_issue("closed-new", status="closed", priority=4, closed_at="2025-05-01T00:00:00Z"),
        make_issue("p0", priority=0, status="in_progress"),
        make_issue("no-priority"),
        make_issue("p1", priority=1, status="blocked"),
        make_issue("closed-bad", status="closed", closed_at="garbage"),
    ]

    assert _ids(sort_issues(issues)) == [
        "p0",
        "p1",
        "p2",
        "no-priority",
        "closed-new",
        "closed-old",
        "closed-bad",
    ]


def test_sort_is_stable_and_does_not_mutate() -> None:
    issues = [make_issue("b", priority=1), make_issue("a", priority=1), make_issue("c", priority=0)]
    before = list(issues)

    result = sort_issues(issues)

    assert _ids(result) == ["c", "b", "a"]
    assert issues == before


def test_recent_sort_puts_epics_first_by_update_time() -> None:
    issues = [
        make_issue("task-open", priority=3),
        make_issue("epic-old", issue_type="epic", updated_at="2025-01-01T00:00:00Z", priority=0),
        make_issue("task-closed", status="closed", closed_at="2025-05-01T00:00:00Z"),
        make_issue("epic-new", issue_type="epic", updated_at="2025-05-01T00:00:00Z", status="closed"),
        make_issue("epic-undated", issue_type="epic"),
        make_issue("bug-urgent", issue_type="bug", priority=0),
    ]

    assert _ids(sort_issues(issues, "recent")) == [
        "epic-new",
        "epic-old",
        "epic-undated",
        "bug-urgent",
        "task-open",
        "task-closed",
    ]


@pytest.mark.parametrize("mode", ["default", "recent"])
def test_sorting_is_idempotent(mode: str) -> None:
    issues = [
        make_issue("a", priority=2, issue_type="epic", updated_at="2025-02-01T00:00:00Z"),
        make_issue("b", status="closed", closed_at="2025-03-01T00:00:00Z"),
        make_issue("c", priority=float("nan")),
        make_issue("d", priority=1),
        make_issue("e", issue_type="epic", updated_at="bogus"),
    ]
    once = sort_issues(issues, mode)  # type: ignore[arg-type]
    assert sort_issues(once, mode) == once  # type: ignore[arg-type]


def test_unknown_sort_mode_raises() -> None:
    with pytest.raises(ValueError):
        sort_issues([], "alphabetical")  # type: ignore[arg-type]


def test_sort_mode_follows_filter() -> None:
    assert sort_mode_for_filter("recent") == "recent"
    assert sort_mode_for_filter("all") == "default"


def test_recent_filter_window_boundary() -> None:
    cutoff = NOW - timedelta(minutes=60)
    issues = [
        make_issue("open"),
        make_issue("at-cutoff", status="closed", closed_at=_iso(cutoff)),
        make_issue("just-past", status="closed", closed_at=_iso(cutoff - timedelta(milliseconds=1))),
        make_issue("fresh", status="closed", closed_at=_iso(NOW - timedelta(minutes=5))),
    ]

    assert _ids(filter_recent(issues, 60, now=NOW)) == ["open", "at-cutoff", "fresh"]


def test_recent_filter_drops_closed_without_usable_timestamp(caplog: pytest.LogCaptureFixture) -> None:
    issues = [
        make_issue("missing", status="closed"),
        make_issue("invalid", status="closed", closed_at="not a date"),
    ]

    with caplog.at_level(logging.WARNING, logger="beadsx.sorting"):
        assert filter_recent(issues, 60, now=NOW) == []

    assert "missing" in caplog.text
    assert "invalid closed_at" in caplog.text


def test_recent_filter_clamps_window(caplog: pytest.LogCaptureFixture) -> None:
    old = make_issue("old", status="closed", closed_at=_iso(NOW - timedelta(minutes=2)))

    with caplog.at_level(logging.WARNING, logger="beadsx.sorting"):
        assert filter_recent([old], 0, now=NOW) == []

    assert "clamping to 1" in caplog.text


@pytest.mark.parametrize(
    ("delta", "expected"),
    [
        (timedelta(seconds=1), "just now"),
        (timedelta(seconds=5), "5s ago"),
        (timedelta(minutes=5), "5m ago"),
        (timedelta(hours=2), "2h ago"),
        (timedelta(days=1, hours=3), "yesterday"),
        (timedelta(days=4), "4d ago"),
    ],
)
def test_format_time_ago(delta: timedelta, expected: str) -> None:
    assert format_time_ago(_iso(NOW - delta), now=NOW) == expected


def test_format_time_ago_invalid_or_future_is_blank() -> None:
    assert format_time_ago("nope", now=NOW) == ""
    assert format_time_ago(None, now=NOW) == ""
    assert format_time_ago(_iso(NOW + timedelta(minutes=1)), now=NOW) == ""


def test_truncate_title() -> None:
    assert truncate_title("short", 10) == "short"
    assert truncate_title("a much longer title", 8) == "a much…"
    assert len(truncate_title("x" * 100, 60)) == 60


def test_short_id() -> None:
    assert short_id("beadsx-123") == "123"
    assert short_id("my-proj-a1b") == "a1b"
    assert short_id("plain") == "plain"
    assert short_id("") == ""


def test_naive_now_is_taken_as_utc() -> None:
    naive_now = NOW.replace(tzinfo=None)
    issues = [
        make_issue("fresh", status="closed", closed_at=_iso(NOW - timedelta(minutes=5))),
        make_issue("stale", status="closed", closed_at=_iso(NOW - timedelta(hours=3))),
    ]

    assert _ids(filter_recent(issues, 60, now=naive_now)) == ["fresh"]
    assert format_time_ago(_iso(NOW - timedelta(minutes=5)), now=naive_now) == "5m ago"
