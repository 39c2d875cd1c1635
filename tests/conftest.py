from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from beadsx.types import Issue


def make_issue(issue_id: str, *parent_ids: str, **fields: Any) -> Issue:
    fields.setdefault("title", f"Issue {issue_id}")
    return Issue(id=issue_id, parent_ids=tuple(parent_ids), **fields)


def issue_row(issue_id: str, **fields: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": issue_id,
        "title": f"Issue {issue_id}",
        "description": "",
        "status": "open",
        "priority": 2,
        "issue_type": "task",
        "created_at": "2025-01-01T00:00:00Z",
        "updated_at": "2025-01-01T00:00:00Z",
        "closed_at": None,
        "assignee": None,
        "labels": [],
    }
    row.update(fields)
    return row


def parent_dep(child_id: str, parent_id: str, dep_type: str = "parent-child") -> dict[str, str]:
    return {
        "issue_id": child_id,
        "depends_on_id": parent_id,
        "type": dep_type,
        "created_at": "2025-01-01T00:00:00Z",
    }


FakeBd = Callable[..., Path]


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    (root / ".beads").mkdir(parents=True)
    return root


@pytest.fixture
def fake_bd(tmp_path: Path) -> FakeBd:
    """Write an executable stand-in for ``bd``.

    ``export`` and ``ready`` print the given payloads; every invocation's
    arguments are appended to ``args.log`` next to the script.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(
        *,
        export: list[str] | None = None,
        ready: object = None,
        extra: str = "",
    ) -> Path:
        export_file = bin_dir / "export.jsonl"
        export_file.write_text("\n".join(export or []) + "\n", encoding="utf-8")
        ready_file = bin_dir / "ready.json"
        ready_file.write_text(
            ready if isinstance(ready, str) else json.dumps(ready if ready is not None else []),
            encoding="utf-8",
        )
        args_log = bin_dir / "args.log"
        script = bin_dir / "bd"
        script.write_text(
            "#!/bin/sh\n"
            f'echo "$*" >> "{args_log}"\n'
            f"{extra}\n"
            'if [ "$1" = "--no-db" ]; then shift; fi\n'
            'case "$1" in\n'
            '  --version) echo "bd version 1.0.0" ;;\n'
            f'  export) cat "{export_file}" ;;\n'
            f'  ready) cat "{ready_file}" ;;\n'
            '  *) echo "unknown command: $1" >&2; exit 2 ;;\n'
            "esac\n",
            encoding="utf-8",
        )
        script.chmod(0o755)
        return script

    return _make
