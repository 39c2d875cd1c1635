"""Issue snapshots as emitted by ``bd`` and the fetch result union."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Literal, TypeVar, Union

ISSUE_STATUSES = (
    "open",
    "in_progress",
    "blocked",
    "closed",
    "tombstone",
)
ISSUE_TYPES = (
    "bug",
    "feature",
    "epic",
    "chore",
    "task",
)
DEPENDENCY_TYPES = (
    "blocks",
    "related",
    "parent-child",
    "discovered-from",
)

FilterMode = Literal["all", "open", "ready", "recent"]
SortMode = Literal["default", "recent"]
FILTER_MODES: tuple[str, ...] = ("all", "open", "ready", "recent")
SORT_MODES: tuple[str, ...] = ("default", "recent")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: object) -> datetime | None:
    """Parse an RFC 3339 timestamp from ``bd``. Returns None when unusable.

    ``bd`` may emit nanosecond fractions; anything past microseconds is
    dropped. Naive timestamps are taken as UTC.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    text = _FRACTION_RE.sub(r"\1", text)
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _as_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return str(value)
    return value


@dataclass(frozen=True)
class Dependency:
    issue_id: str
    depends_on_id: str
    type: str
    created_at: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Dependency:
        return cls(
            issue_id=str(d.get("issue_id") or ""),
            depends_on_id=str(d.get("depends_on_id") or ""),
            type=str(d.get("type") or ""),
            created_at=str(d.get("created_at") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "depends_on_id": self.depends_on_id,
            "type": self.type,
            "created_at": self.created_at,
        }


def derive_parent_ids(dependencies: tuple[Dependency, ...]) -> tuple[str, ...]:
    """Parent ids come from ``parent-child`` edges, else from ``blocks`` edges."""
    for edge_type in ("parent-child", "blocks"):
        ids: list[str] = []
        for dep in dependencies:
            if dep.type == edge_type and dep.depends_on_id and dep.depends_on_id not in ids:
                ids.append(dep.depends_on_id)
        if ids:
            return tuple(ids)
    return ()


@dataclass(frozen=True)
class Issue:
    id: str
    title: str = ""
    description: str = ""
    status: str = "open"
    priority: float | int | None = None
    issue_type: str = "task"
    created_at: str = ""
    updated_at: str = ""
    closed_at: str | None = None
    assignee: str | None = None
    labels: frozenset[str] = frozenset()
    dependencies: tuple[Dependency, ...] = ()
    parent_ids: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Issue:
        issue_id = d.get("id")
        if not isinstance(issue_id, str) or not issue_id.strip():
            raise ValueError("issue is missing a string 'id'")

        raw_deps = d.get("dependencies") or []
        if not isinstance(raw_deps, list):
            raise ValueError(f"issue {issue_id}: 'dependencies' must be a list")
        deps = tuple(Dependency.from_dict(dep) for dep in raw_deps if isinstance(dep, dict))

        priority = d.get("priority")
        if isinstance(priority, bool) or not isinstance(priority, (int, float)):
            priority = None

        labels = d.get("labels") or []
        if not isinstance(labels, list):
            labels = []

        return cls(
            id=issue_id,
            title=_as_str(d.get("title")) or "",
            description=_as_str(d.get("description")) or "",
            status=_as_str(d.get("status")) or "open",
            priority=priority,
            issue_type=_as_str(d.get("issue_type")) or "task",
            created_at=_as_str(d.get("created_at")) or "",
            updated_at=_as_str(d.get("updated_at")) or "",
            closed_at=_as_str(d.get("closed_at")),
            assignee=_as_str(d.get("assignee")),
            labels=frozenset(str(label) for label in labels),
            dependencies=deps,
            parent_ids=derive_parent_ids(deps),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "issue_type": self.issue_type,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "closed_at": self.closed_at,
            "assignee": self.assignee,
            "labels": sorted(self.labels),
            "dependencies": [dep.to_dict() for dep in self.dependencies],
            "parent_ids": list(self.parent_ids),
        }

    @property
    def is_closed(self) -> bool:
        return self.status == "closed"

    @property
    def is_tombstone(self) -> bool:
        return self.status == "tombstone"

    @property
    def priority_rank(self) -> float:
        """Sort rank for priority; missing or non-finite sorts last."""
        if self.priority is None:
            return math.inf
        value = float(self.priority)
        if not math.isfinite(value):
            return math.inf
        return value


T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T
    success: Literal[True] = field(default=True, init=False)
    error: None = field(default=None, init=False)


@dataclass(frozen=True)
class PartialErr(Generic[T]):
    """Some data was salvaged but the caller should warn."""

    data: T
    error: str
    success: Literal[False] = field(default=False, init=False)


@dataclass(frozen=True)
class Err(Generic[T]):
    error: str
    data: T = field(default_factory=list)  # type: ignore[assignment]
    success: Literal[False] = field(default=False, init=False)


BeadsResult = Union[Ok[T], PartialErr[T], Err[T]]
