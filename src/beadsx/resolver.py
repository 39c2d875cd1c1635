"""Locate a working ``bd`` executable.

Resolution order: explicit config path, then ``$BDX_BD_PATH``, then plain
``bd`` on PATH, then a short list of common install locations.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path

from .config import COMMAND_ENV_VAR, DEFAULT_COMMAND, BeadsConfig
from .errors import BdBrokenExecutableError, BdError, BdNotFoundError
from .invoker import VERSION_PROBE_TIMEOUT, ProcessOutput, invoke

log = logging.getLogger(__name__)

_SHELL_METACHARS_RE = re.compile(r"[;&|<>`$\"'\\()\n\r\0]")

Probe = Callable[[str], Awaitable[ProcessOutput]]


def has_shell_metachars(command: str) -> bool:
    return bool(_SHELL_METACHARS_RE.search(command))


def fallback_locations(
    *,
    platform: str | None = None,
    home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[Path]:
    """Common install paths for ``bd``, most specific first."""
    plat = platform or sys.platform
    home = home or Path.home()
    env = os.environ if environ is None else environ

    if plat.startswith("win"):
        local = Path(env.get("LOCALAPPDATA") or home / "AppData" / "Local")
        return [
            local / "Programs" / "bd" / "bd.exe",
            home / "go" / "bin" / "bd.exe",
            home / ".local" / "bin" / "bd.exe",
        ]

    paths = [
        home / ".local" / "bin" / "bd",
        home / "go" / "bin" / "bd",
    ]
    if plat == "darwin":
        paths.append(Path("/opt/homebrew/bin/bd"))
    paths.extend([Path("/usr/local/bin/bd"), Path("/usr/bin/bd")])
    return paths


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


async def _version_probe(command: str) -> ProcessOutput:
    return await invoke(command, ["--version"], timeout=VERSION_PROBE_TIMEOUT)


class CommandResolver:
    """Resolves and caches the ``bd`` command path.

    The cache holds a single path and is only filled by a confirmed hit;
    callers invalidate it on config change or on a not-found failure.
    """

    def __init__(
        self,
        config: BeadsConfig | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        probe: Probe | None = None,
        candidates: Sequence[Path] | None = None,
        warn: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config or BeadsConfig()
        self._environ = environ
        self._probe = probe or _version_probe
        self._candidates = candidates
        self._warn = warn or log.warning
        self._cached: str | None = None

    @property
    def cached_path(self) -> str | None:
        return self._cached

    def clear_cache(self) -> None:
        self._cached = None

    def configure(self, config: BeadsConfig) -> None:
        self.config = config
        self.clear_cache()

    def requested_command(self) -> str:
        env = os.environ if self._environ is None else self._environ
        if self.config.command_path:
            requested, source = self.config.command_path, "command_path"
        elif env.get(COMMAND_ENV_VAR):
            requested, source = env[COMMAND_ENV_VAR], COMMAND_ENV_VAR
        else:
            return DEFAULT_COMMAND

        if has_shell_metachars(requested):
            self._warn(
                f"Invalid {source} contains shell metacharacters, using default '{DEFAULT_COMMAND}'"
            )
            return DEFAULT_COMMAND
        return requested

    def _candidate_paths(self) -> Sequence[Path]:
        if self._candidates is not None:
            return self._candidates
        return fallback_locations(environ=self._environ)

    def _search_fallbacks(self) -> str | None:
        for candidate in self._candidate_paths():
            try:
                if _is_executable(candidate):
                    return str(candidate)
            except OSError as exc:
                log.debug("skipping %s: %s", candidate, exc)
        return None

    async def resolve(self) -> str:
        """Return the command to run.

        Falls back to the requested string when nothing better is found, so
        the invocation itself reports the precise failure. Raises
        :class:`BdBrokenExecutableError` when the requested command runs but
        fails and fallback is not enabled.
        """
        if self._cached is not None:
            return self._cached

        requested = self.requested_command()

        if os.path.isabs(requested):
            try:
                if _is_executable(Path(requested)):
                    self._cached = requested
                else:
                    log.warning("'%s' is missing or not executable", requested)
            except OSError as exc:
                log.debug("could not check '%s': %s", requested, exc)
            return requested

        broken: BdError | None = None
        try:
            await self._probe(requested)
        except BdNotFoundError:
            log.debug("'%s' not found on PATH, searching common locations", requested)
        except BdError as exc:
            if not self.config.allow_fallback_on_broken:
                raise BdBrokenExecutableError(
                    f"'{requested}' was found but failed to run: {exc.message}",
                    command=requested,
                    cause=exc,
                ) from exc
            broken = exc
        else:
            self._cached = requested
            return requested

        found = self._search_fallbacks()
        if found is None:
            return requested

        if broken is not None:
            self._warn(f"'{requested}' failed ({broken.kind}); using fallback '{found}' instead")
        else:
            log.info("found bd at %s", found)
        self._cached = found
        return found
