"""Decode ``bd ready --json`` and ``bd export`` output into :class:`Issue` rows."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from .errors import BdParseError, BdUnexpectedFormatError
from .types import Issue

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedIssues:
    issues: list[Issue]
    failed: int = 0
    total: int = 0


def _issues_from_rows(rows: list[object]) -> ParsedIssues:
    issues: list[Issue] = []
    failed = 0
    for idx, row in enumerate(rows):
        if not isinstance(row, dict):
            log.debug("ready row %d is not an object", idx)
            failed += 1
            continue
        try:
            issues.append(Issue.from_dict(row))
        except ValueError as exc:
            log.debug("ready row %d rejected: %s", idx, exc)
            failed += 1
    return ParsedIssues(issues=issues, failed=failed, total=len(rows))


def parse_ready_output(stdout: str) -> ParsedIssues:
    """Accept a bare JSON array or ``{"issues": [...]}``; anything else raises."""
    if not stdout.strip():
        return ParsedIssues(issues=[])

    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError as exc:
        raise BdParseError(
            f"Failed to parse ready issues ({exc.msg} at line {exc.lineno}). Output may be corrupted."
        ) from exc

    if isinstance(payload, list):
        return _issues_from_rows(payload)
    if isinstance(payload, dict) and isinstance(payload.get("issues"), list):
        return _issues_from_rows(payload["issues"])

    raise BdUnexpectedFormatError(
        f"bd ready returned an unexpected {type(payload).__name__} document. "
        "Your bd version may be incompatible."
    )


def parse_export_output(stdout: str) -> ParsedIssues:
    """Parse JSONL, one issue per line. Bad lines are counted and skipped."""
    lines = [line for line in stdout.splitlines() if line.strip()]
    issues: list[Issue] = []
    failed = 0
    for lineno, line in enumerate(lines, start=1):
        try:
            row = json.loads(line)
            if not isinstance(row, dict):
                raise ValueError(f"expected an object, got {type(row).__name__}")
            issues.append(Issue.from_dict(row))
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError
            log.debug("Failed to parse export line %d: %s", lineno, exc)
            failed += 1
    return ParsedIssues(issues=issues, failed=failed, total=len(lines))


def drop_tombstones(issues: list[Issue]) -> list[Issue]:
    return [issue for issue in issues if not issue.is_tombstone]
