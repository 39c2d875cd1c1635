from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from .hierarchy import ancestors_of, children_index, should_auto_expand
from .types import FilterMode, Issue

log = logging.getLogger(__name__)


class ExpansionState:
    """Expand/collapse bookkeeping that survives refreshes.

    The first snapshot and every filter change compute expansion from
    scratch. Later snapshots only expand what is new or reopened (plus its
    ancestors) and otherwise keep what the user chose, except that a parent
    the user collapsed is reopened when it gains new unfinished children.
    """

    def __init__(self, *, auto_expand_open: bool = True) -> None:
        self.auto_expand_open = auto_expand_open
        self.expanded: set[str] = set()
        self.user_collapsed: set[str] = set()
        self.user_expanded: set[str] = set()
        self._filter: FilterMode | None = None
        self._previous_status: dict[str, str] = {}

    def qualifies(
        self,
        issue: Issue,
        issues: Sequence[Issue],
        filter_mode: FilterMode,
        children: Mapping[str, Sequence[Issue]] | None = None,
    ) -> bool:
        if children is None:
            children = children_index(issues)
        if not children.get(issue.id):
            return False
        if filter_mode == "recent":
            return should_auto_expand(issue, issues, children=children)
        return self.auto_expand_open and not issue.is_closed

    def refresh(self, issues: Sequence[Issue], filter_mode: FilterMode) -> set[str]:
        """Fold a new snapshot in and return the ids to show expanded."""
        children = children_index(issues)
        if self._filter is None or filter_mode != self._filter:
            self._reset(issues, filter_mode, children)
        else:
            self._merge(issues, filter_mode, children)
        self._previous_status = {issue.id: issue.status for issue in issues}
        return set(self.expanded)

    def _reset(
        self,
        issues: Sequence[Issue],
        filter_mode: FilterMode,
        children: Mapping[str, Sequence[Issue]],
    ) -> None:
        if self._filter is not None:
            self.user_collapsed.clear()
            self.user_expanded.clear()
        self._filter = filter_mode
        self.expanded = {
            issue.id for issue in issues if self.qualifies(issue, issues, filter_mode, children)
        }

    def _merge(
        self,
        issues: Sequence[Issue],
        filter_mode: FilterMode,
        children: Mapping[str, Sequence[Issue]],
    ) -> None:
        by_id = {issue.id: issue for issue in issues}
        previous = self._previous_status
        new_ids = {issue_id for issue_id in by_id if issue_id not in previous}
        reopened = {
            issue.id
            for issue in issues
            if previous.get(issue.id) == "closed" and not issue.is_closed
        }
        fresh = new_ids | reopened

        self.user_expanded &= by_id.keys()
        self.user_collapsed &= by_id.keys()

        to_expand: set[str] = set()
        for collapsed_id in list(self.user_collapsed):
            gained = any(
                child.id in fresh and not child.is_closed for child in children.get(collapsed_id, ())
            )
            if gained:
                self.user_collapsed.discard(collapsed_id)
                to_expand.add(collapsed_id)

        candidates = set(fresh)
        for issue_id in fresh:
            candidates.update(ancestor.id for ancestor in ancestors_of(by_id[issue_id], issues))
        for issue_id in candidates:
            if issue_id in self.user_collapsed:
                continue
            if self.qualifies(by_id[issue_id], issues, filter_mode, children):
                to_expand.add(issue_id)

        expanded = (self.expanded & by_id.keys()) | to_expand
        if filter_mode == "recent":
            expanded = {
                issue_id
                for issue_id in expanded
                if issue_id in self.user_expanded
                or self.qualifies(by_id[issue_id], issues, filter_mode, children)
            }
        if to_expand:
            log.debug("auto-expanding %s", ", ".join(sorted(to_expand)))
        self.expanded = expanded

    def expand(self, issue_id: str) -> None:
        self.expanded.add(issue_id)
        self.user_expanded.add(issue_id)
        self.user_collapsed.discard(issue_id)

    def collapse(self, issue_id: str) -> None:
        self.expanded.discard(issue_id)
        self.user_collapsed.add(issue_id)
        self.user_expanded.discard(issue_id)

    def toggle(self, issue_id: str) -> bool:
        """Flip one node; returns True when it is now expanded."""
        if issue_id in self.expanded:
            self.collapse(issue_id)
            return False
        self.expand(issue_id)
        return True
