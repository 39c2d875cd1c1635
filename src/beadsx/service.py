"""Read-only access to a workspace's issues through the ``bd`` executable."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from .config import BeadsConfig, validate_recent_window_minutes
from .errors import BdError, BdNotFoundError, BdPermissionError, format_bd_error
from .invoker import DEFAULT_TIMEOUT, EXPORT_MAX_OUTPUT_BYTES, QUERY_MAX_OUTPUT_BYTES, invoke
from .parsing import ParsedIssues, drop_tombstones, parse_export_output, parse_ready_output
from .resolver import CommandResolver
from .sorting import filter_recent
from .types import FILTER_MODES, BeadsResult, Err, FilterMode, Issue, Ok, PartialErr

log = logging.getLogger(__name__)

BEADS_DIR = ".beads"

Severity = Literal["info", "warn", "error"]
Notifier = Callable[[str, Severity], None]


class InitStatus(str, Enum):
    INITIALIZED = "initialized"
    NOT_INITIALIZED = "not-initialized"
    INACCESSIBLE = "inaccessible"


class BeadsService:
    """Owns the resolved-command cache and the per-workspace init cache.

    Fetches return :data:`BeadsResult` values and never raise for expected
    failures: a missing tool, an uninitialised workspace or bad output.
    """

    def __init__(
        self,
        config: BeadsConfig | None = None,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        notify: Notifier | None = None,
        resolver: CommandResolver | None = None,
        environ: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.logger = logger or log
        self.notify = notify
        self.timeout = timeout
        self.resolver = resolver or CommandResolver(environ=environ, warn=self._warn)
        self._init_cache: dict[str, bool] = {}
        self.config = BeadsConfig()
        self.recent_window_minutes: int | float = self.config.recent_window_minutes
        self.configure(config or BeadsConfig())

    # ------------------------------------------------------------------
    # Configuration and caches
    # ------------------------------------------------------------------

    def configure(self, config: BeadsConfig) -> None:
        self.config = config
        self.resolver.configure(config)
        minutes, warning = validate_recent_window_minutes(config.recent_window_minutes)
        if warning:
            self._warn(warning)
        self.recent_window_minutes = minutes

    def clear_path_cache(self) -> None:
        self.resolver.clear_cache()

    def clear_init_cache(self) -> None:
        self._init_cache.clear()

    def _warn(self, message: str) -> None:
        self.logger.warning(message)
        if self.notify is not None:
            self.notify(message, "warn")

    def build_bd_args(self, args: Sequence[str]) -> list[str]:
        if self.config.use_jsonl_mode:
            return ["--no-db", *args]
        return list(args)

    # ------------------------------------------------------------------
    # Workspace state
    # ------------------------------------------------------------------

    def init_status(self, workspace: Path | str) -> InitStatus:
        key = os.path.abspath(workspace)
        cached = self._init_cache.get(key)
        if cached is not None:
            return InitStatus.INITIALIZED if cached else InitStatus.NOT_INITIALIZED

        beads_dir = Path(key) / BEADS_DIR
        try:
            beads_dir.stat()
        except FileNotFoundError:
            self._init_cache[key] = False
            return InitStatus.NOT_INITIALIZED
        except PermissionError as exc:
            self.logger.warning("Could not check %s: %s", beads_dir, exc)
            return InitStatus.INACCESSIBLE
        except OSError as exc:
            # Transient; not cached so the next refresh retries.
            self.logger.warning("Could not check %s: %s", beads_dir, exc)
            return InitStatus.NOT_INITIALIZED

        self._init_cache[key] = True
        return InitStatus.INITIALIZED

    def is_initialized(self, workspace: Path | str) -> bool:
        return self.init_status(workspace) is InitStatus.INITIALIZED

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def _run(self, workspace: Path | str, args: Sequence[str], max_output_bytes: int) -> str:
        command = await self.resolver.resolve()
        argv = self.build_bd_args(args)
        self.logger.debug("running %s %s in %s", command, " ".join(argv), workspace)
        try:
            output = await invoke(
                command,
                argv,
                cwd=workspace,
                timeout=self.timeout,
                max_output_bytes=max_output_bytes,
            )
        except BdNotFoundError:
            # The tool may get installed or moved while we are running.
            self.resolver.clear_cache()
            raise
        return output.stdout

    def _precheck(self, workspace: Path | str, what: str) -> BeadsResult[list[Issue]] | None:
        status = self.init_status(workspace)
        if status is InitStatus.INACCESSIBLE:
            message = format_bd_error(
                BdPermissionError(f"cannot access {Path(workspace) / BEADS_DIR}")
            )
            self._warn(message)
            return Err(error=message, data=[])
        if status is InitStatus.NOT_INITIALIZED:
            self.logger.debug("Beads not initialized in %s, skipping bd %s", workspace, what)
            return Ok([])
        return None

    def _failure(self, exc: BdError, what: str) -> Err[list[Issue]]:
        message = format_bd_error(exc)
        self.logger.debug("bd %s failed: %s", what, exc.message)
        self._warn(message)
        return Err(error=message, data=[])

    def _finish(self, parsed: ParsedIssues, what: str) -> BeadsResult[list[Issue]]:
        issues = drop_tombstones(parsed.issues)
        if parsed.failed:
            message = (
                f"{parsed.failed} issue(s) failed to load due to parsing errors "
                f"({parsed.failed}/{parsed.total} lines)."
            )
            self.logger.debug("bd %s: %d/%d rows failed to parse", what, parsed.failed, parsed.total)
            self._warn(message)
            return PartialErr(data=issues, error=message)
        self.logger.debug("bd %s: parsed %d issues", what, len(issues))
        return Ok(issues)

    # ------------------------------------------------------------------
    # Fetches
    # ------------------------------------------------------------------

    async def fetch_ready(self, workspace: Path | str) -> BeadsResult[list[Issue]]:
        early = self._precheck(workspace, "ready")
        if early is not None:
            return early
        try:
            stdout = await self._run(workspace, ["ready", "--json"], QUERY_MAX_OUTPUT_BYTES)
            parsed = parse_ready_output(stdout)
        except BdError as exc:
            return self._failure(exc, "ready")
        return self._finish(parsed, "ready")

    async def fetch_all_with_deps(self, workspace: Path | str) -> BeadsResult[list[Issue]]:
        early = self._precheck(workspace, "export")
        if early is not None:
            return early
        try:
            stdout = await self._run(workspace, ["export"], EXPORT_MAX_OUTPUT_BYTES)
        except BdError as exc:
            return self._failure(exc, "export")
        return self._finish(parse_export_output(stdout), "export")

    async def list_filtered(
        self,
        workspace: Path | str,
        mode: FilterMode,
        *,
        now: datetime | None = None,
    ) -> BeadsResult[list[Issue]]:
        if mode not in FILTER_MODES:
            raise ValueError(f"unknown filter mode {mode!r}; expected one of: {', '.join(FILTER_MODES)}")

        if mode == "ready":
            result = await self.fetch_ready(workspace)
            # bd ready should never emit tombstones, but the views must not see them.
            return _with_data(result, drop_tombstones(result.data))

        result = await self.fetch_all_with_deps(workspace)
        if mode == "open":
            issues = [issue for issue in result.data if not issue.is_closed]
        elif mode == "recent":
            issues = filter_recent(result.data, self.recent_window_minutes, now=now)
        else:
            issues = result.data
        self.logger.debug("list_filtered(%s): %d issues", mode, len(issues))
        return _with_data(result, issues)


def _with_data(result: BeadsResult[list[Issue]], data: list[Issue]) -> BeadsResult[list[Issue]]:
    if isinstance(result, Ok):
        return Ok(data)
    if isinstance(result, PartialErr):
        return PartialErr(data=data, error=result.error)
    return Err(error=result.error, data=data)
