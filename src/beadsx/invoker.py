"""Run ``bd`` as a subprocess with a wall-clock timeout and an output cap."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .errors import (
    BdError,
    BdExitError,
    BdNotFoundError,
    BdOutputTooLargeError,
    BdPermissionError,
    BdTimeoutError,
)

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
VERSION_PROBE_TIMEOUT = 5.0
# `bd export` carries every issue with its dependencies; filtered queries are smaller.
EXPORT_MAX_OUTPUT_BYTES = 50 * 1024 * 1024
QUERY_MAX_OUTPUT_BYTES = 10 * 1024 * 1024

_READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class ProcessOutput:
    stdout: str
    stderr: str


async def _read_capped(stream: asyncio.StreamReader | None, limit: int, argv: list[str]) -> bytes:
    if stream is None:
        return b""
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise BdOutputTooLargeError(
                f"output of {' '.join(argv)} exceeded {limit} bytes",
                argv=argv,
                limit=limit,
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def _read_truncated(stream: asyncio.StreamReader | None, limit: int) -> bytes:
    """Drain ``stream`` to EOF, keeping at most ``limit`` bytes."""
    if stream is None:
        return b""
    kept = bytearray()
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        room = limit - len(kept)
        if room > 0:
            kept += chunk[:room]
    return bytes(kept)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


async def invoke(
    command: str,
    args: Sequence[str],
    *,
    cwd: Path | str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_output_bytes: int = QUERY_MAX_OUTPUT_BYTES,
) -> ProcessOutput:
    """Run ``command`` with ``args`` and return its decoded output.

    Raises a :class:`BdError` subclass for every failure; a non-empty stderr
    on a zero exit is logged and returned, not raised.
    """
    if isinstance(args, (str, bytes)) or not isinstance(args, Sequence):
        raise TypeError("args must be a sequence of strings")
    argv = [command, *(str(arg) for arg in args)]

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise BdNotFoundError(f"{command}: not found", argv=argv) from exc
    except PermissionError as exc:
        raise BdPermissionError(f"'{command}' is not executable", argv=argv) from exc
    except OSError as exc:
        raise BdError(f"Failed to start '{command}': {exc.strerror or exc}", argv=argv) from exc

    async def _collect() -> tuple[bytes, bytes, int]:
        # Only stdout counts against the cap; stderr is advisory and truncated.
        out_task = asyncio.ensure_future(_read_capped(proc.stdout, max_output_bytes, argv))
        err_task = asyncio.ensure_future(_read_truncated(proc.stderr, max_output_bytes))
        try:
            out = await out_task
            err = await err_task
        finally:
            for task in (out_task, err_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(out_task, err_task, return_exceptions=True)
        return out, err, await proc.wait()

    try:
        stdout, stderr, returncode = await asyncio.wait_for(_collect(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        await _kill(proc)
        raise BdTimeoutError(
            f"{' '.join(argv)} timed out after {timeout:g}s",
            argv=argv,
            timeout=timeout,
        ) from exc
    except BdOutputTooLargeError:
        await _kill(proc)
        raise

    out_text = stdout.decode("utf-8", errors="replace")
    err_text = stderr.decode("utf-8", errors="replace")

    if returncode != 0:
        log.debug("%s exited %s; stderr: %s", " ".join(argv), returncode, err_text.strip())
        # 126/127 are the shell conventions for "not executable" / "not found"
        if returncode == 127:
            raise BdNotFoundError(f"{command}: not found", argv=argv)
        if returncode == 126:
            raise BdPermissionError(f"'{command}' is not executable", argv=argv)
        raise BdExitError(
            f"{' '.join(argv)} exited with code {returncode}",
            argv=argv,
            returncode=returncode,
            stderr=err_text,
        )

    if err_text.strip():
        log.debug("%s stderr: %s", " ".join(argv), err_text.strip())

    return ProcessOutput(stdout=out_text, stderr=err_text)
