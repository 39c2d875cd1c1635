"""Tree operations over a flat issue list with multi-parent links.

Every walk keeps a visited set, so cycles and self-references in the
dependency data terminate instead of recursing forever.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Collection, Mapping, Sequence

from .sorting import sort_issues
from .types import Issue, SortMode

log = logging.getLogger(__name__)


def _by_id(issues: Sequence[Issue]) -> dict[str, Issue]:
    return {issue.id: issue for issue in issues}


def children_index(issues: Sequence[Issue]) -> dict[str, list[Issue]]:
    """Map parent id -> direct children, in the order of ``issues``."""
    index: dict[str, list[Issue]] = {}
    for issue in issues:
        for parent_id in dict.fromkeys(issue.parent_ids):
            index.setdefault(parent_id, []).append(issue)
    return index


def children_of(issue: Issue, issues: Sequence[Issue]) -> list[Issue]:
    """Direct children, in the order of ``issues``."""
    return [candidate for candidate in issues if issue.id in candidate.parent_ids]


def has_children(issue: Issue, issues: Sequence[Issue]) -> bool:
    return any(issue.id in candidate.parent_ids for candidate in issues)


def ancestors_of(issue: Issue, issues: Sequence[Issue]) -> list[Issue]:
    """Every ancestor reachable through any parent path, nearest first.

    The issue itself is never included, even when it sits on a cycle.
    """
    by_id = _by_id(issues)
    visited: set[str] = {issue.id}
    ancestors: list[Issue] = []
    queue: deque[str] = deque(issue.parent_ids)
    while queue:
        parent_id = queue.popleft()
        if parent_id in visited:
            continue
        visited.add(parent_id)
        parent = by_id.get(parent_id)
        if parent is None:
            log.debug("issue %s references missing parent %s", issue.id, parent_id)
            continue
        ancestors.append(parent)
        queue.extend(parent.parent_ids)
    return ancestors


def _has_present_parent(issue: Issue, present: Collection[str]) -> bool:
    return any(parent_id != issue.id and parent_id in present for parent_id in issue.parent_ids)


def roots_of(issues: Sequence[Issue]) -> list[Issue]:
    """Issues with no parent present in ``issues``.

    Issues whose parents were all filtered out are promoted, as are issues
    only reachable through a parent cycle; both are logged.
    """
    present = {issue.id for issue in issues}
    roots: list[Issue] = []
    for issue in issues:
        if _has_present_parent(issue, present):
            continue
        real_parents = [pid for pid in issue.parent_ids if pid != issue.id]
        if real_parents:
            log.warning(
                "Issue %s promoted to root: parent(s) %s not in current view",
                issue.id,
                ", ".join(real_parents),
            )
        roots.append(issue)

    children = children_index(issues)
    reached = _reachable_ids(roots, children)
    if len(reached) == len(present):
        return roots

    for issue in issues:
        if issue.id in reached:
            continue
        log.warning("Issue %s promoted to root: it is only reachable through a parent cycle", issue.id)
        roots.append(issue)
        reached |= _reachable_ids([issue], children)
    return roots


def _reachable_ids(start: Sequence[Issue], children: dict[str, list[Issue]]) -> set[str]:
    seen: set[str] = set()
    stack = [issue.id for issue in start]
    while stack:
        issue_id = stack.pop()
        if issue_id in seen:
            continue
        seen.add(issue_id)
        stack.extend(child.id for child in children.get(issue_id, ()))
    return seen


def compute_depths(issues: Sequence[Issue]) -> dict[str, int]:
    """Depth per issue: 0 without a present parent, else 1 + the shallowest parent.

    A node met again while its own depth is still being resolved is pinned
    to depth 0, which breaks the cycle; the first pinned value sticks.
    """
    by_id = _by_id(issues)
    depths: dict[str, int] = {}

    def depth_of(issue: Issue, visiting: set[str]) -> int:
        if issue.id in depths:
            return depths[issue.id]
        if issue.id in visiting:
            depths[issue.id] = 0
            return 0

        parents = [by_id[pid] for pid in issue.parent_ids if pid in by_id]
        if not parents:
            depths[issue.id] = 0
            return 0

        visiting.add(issue.id)
        depth = 1 + min(depth_of(parent, visiting) for parent in parents)
        visiting.discard(issue.id)
        return depths.setdefault(issue.id, depth)

    for issue in issues:
        depth_of(issue, set())
    return depths


def should_auto_expand(
    issue: Issue,
    issues: Sequence[Issue],
    *,
    children: Mapping[str, Sequence[Issue]] | None = None,
) -> bool:
    """True when some descendant of ``issue`` is not closed.

    Each descendant is visited at most once, so shared subtrees in a
    multi-parent graph cost nothing extra. Pass a prebuilt ``children``
    index (see :func:`children_index`) when checking many issues of the
    same snapshot.
    """
    if children is None:
        children = children_index(issues)

    visited: set[str] = {issue.id}
    stack: list[str] = [issue.id]
    while stack:
        node_id = stack.pop()
        for child in children.get(node_id, ()):
            if not child.is_closed:
                return True
            if child.id not in visited:
                visited.add(child.id)
                stack.append(child.id)
    return False


def visible_rows(
    issues: Sequence[Issue],
    expanded_ids: Collection[str],
    sort_mode: SortMode = "default",
) -> list[tuple[Issue, int]]:
    """Flatten the tree to ``(issue, depth)`` rows as a tree view shows them.

    Each level is sorted with ``sort_mode``; children appear only below
    expanded parents. A multi-parent issue appears once under each parent.
    """
    children = children_index(issues)
    rows: list[tuple[Issue, int]] = []

    def add(issue: Issue, depth: int, path: set[str]) -> None:
        rows.append((issue, depth))
        if issue.id not in expanded_ids:
            return
        path.add(issue.id)
        for child in sort_issues(children.get(issue.id, []), sort_mode):
            if child.id not in path:
                add(child, depth + 1, path)
        path.discard(issue.id)

    for root in sort_issues(roots_of(issues), sort_mode):
        add(root, 0, set())
    return rows
