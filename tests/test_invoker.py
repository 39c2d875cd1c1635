from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from beadsx.errors import (
    BdError,
    BdExitError,
    BdNotFoundError,
    BdOutputTooLargeError,
    BdPermissionError,
    BdTimeoutError,
)
from beadsx.invoker import invoke


def _script(tmp_path: Path, body: str, *, name: str = "tool", mode: int = 0o755) -> Path:
    path = tmp_path / name
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(mode)
    return path


@pytest.mark.asyncio
async def test_invoke_captures_stdout_and_advisory_stderr(tmp_path: Path) -> None:
    tool = _script(tmp_path, 'echo "hello $1"\necho "deprecated flag" >&2')

    out = await invoke(str(tool), ["world"], cwd=tmp_path)

    assert out.stdout == "hello world\n"
    assert out.stderr == "deprecated flag\n"


@pytest.mark.asyncio
async def test_invoke_runs_in_working_directory(tmp_path: Path) -> None:
    workdir = tmp_path / "ws"
    workdir.mkdir()
    tool = _script(tmp_path, "pwd")

    out = await invoke(str(tool), [], cwd=workdir)

    assert Path(out.stdout.strip()).resolve() == workdir.resolve()


@pytest.mark.asyncio
async def test_nonzero_exit_is_bad_exit(tmp_path: Path) -> None:
    tool = _script(tmp_path, 'echo "database locked" >&2\nexit 3')

    with pytest.raises(BdExitError) as excinfo:
        await invoke(str(tool), ["export"])

    assert excinfo.value.returncode == 3
    assert "database locked" in excinfo.value.stderr
    assert excinfo.value.argv == [str(tool), "export"]


@pytest.mark.asyncio
async def test_missing_executable_is_not_found(tmp_path: Path) -> None:
    with pytest.raises(BdNotFoundError):
        await invoke(str(tmp_path / "does-not-exist"), ["ready"])


@pytest.mark.asyncio
async def test_non_executable_file_is_permission_error(tmp_path: Path) -> None:
    tool = _script(tmp_path, "echo hi", mode=0o644)

    with pytest.raises(BdPermissionError):
        await invoke(str(tool), [])


@pytest.mark.asyncio
async def test_timeout_kills_the_process(tmp_path: Path) -> None:
    tool = _script(tmp_path, "exec sleep 5")

    with pytest.raises(BdTimeoutError) as excinfo:
        await invoke(str(tool), ["export"], timeout=0.2)

    assert excinfo.value.timeout == 0.2


@pytest.mark.asyncio
async def test_output_over_limit_is_its_own_error(tmp_path: Path) -> None:
    tool = _script(tmp_path, 'printf "%0200d" 0')

    with pytest.raises(BdOutputTooLargeError) as excinfo:
        await invoke(str(tool), [], max_output_bytes=64)

    assert excinfo.value.limit == 64


@pytest.mark.asyncio
async def test_other_spawn_errors_are_generic_bd_errors() -> None:
    with patch(
        "beadsx.invoker.asyncio.create_subprocess_exec",
        AsyncMock(side_effect=OSError(8, "Exec format error")),
    ):
        with pytest.raises(BdError) as excinfo:
            await invoke("bd", ["ready"])

    assert excinfo.value.kind == "spawn-error"
    assert "Exec format error" in excinfo.value.message


@pytest.mark.asyncio
async def test_args_must_be_a_sequence() -> None:
    with pytest.raises(TypeError):
        await invoke("bd", "ready --json")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_noisy_stderr_does_not_trip_the_output_cap(tmp_path: Path) -> None:
    tool = _script(tmp_path, 'printf "%0200d" 0 >&2\necho ok')

    out = await invoke(str(tool), [], max_output_bytes=64)

    assert out.stdout == "ok\n"
    assert len(out.stderr) == 64


@pytest.mark.asyncio
async def test_both_streams_over_limit_report_stdout(tmp_path: Path) -> None:
    tool = _script(tmp_path, 'printf "%0200d" 0 >&2\nprintf "%0200d" 0')

    with pytest.raises(BdOutputTooLargeError):
        await invoke(str(tool), [], max_output_bytes=64)
