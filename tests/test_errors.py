from __future__ import annotations

from beadsx.errors import (
    BdBrokenExecutableError,
    BdExitError,
    BdNotFoundError,
    BdOutputTooLargeError,
    BdParseError,
    BdPermissionError,
    BdTimeoutError,
    format_bd_error,
)


def test_exit_code_message_is_actionable() -> None:
    exc = BdExitError("boom", argv=["bd", "export"], returncode=1, stderr="db locked")

    message = format_bd_error(exc)

    assert "exit code 1" in message
    assert "manually" in message
    assert "bd export" in message


def test_not_found_message_mentions_path() -> None:
    message = format_bd_error(BdNotFoundError("bd: not found", argv=["bd", "ready"]))
    assert "not found" in message
    assert "PATH" in message


def test_timeout_message_names_subcommand() -> None:
    exc = BdTimeoutError("slow", argv=["bd", "--no-db", "export"], timeout=30)
    message = format_bd_error(exc)
    assert "'bd export' timed out after 30s" in message


def test_output_too_large_suggests_compaction() -> None:
    exc = BdOutputTooLargeError("big", argv=["bd", "export"], limit=50 * 1024 * 1024)
    message = format_bd_error(exc)
    assert "50 MB" in message
    assert "compact" in message


def test_permission_and_parse_messages() -> None:
    assert "Permission denied" in format_bd_error(BdPermissionError("'/x/bd' is not executable"))
    assert format_bd_error(BdParseError("Failed to parse ready issues.")) == "Failed to parse ready issues."


def test_broken_executable_points_at_fallback_flag() -> None:
    cause = BdExitError("boom", argv=["bd", "--version"], returncode=2)
    exc = BdBrokenExecutableError("broken", command="bd", cause=cause)

    message = format_bd_error(exc)

    assert "'bd'" in message
    assert "bad-exit" in message
    assert "allow_fallback_on_broken" in message


def test_kinds_are_stable() -> None:
    assert BdNotFoundError.kind == "not-found"
    assert BdPermissionError.kind == "permission"
    assert BdTimeoutError.kind == "timeout"
    assert BdOutputTooLargeError.kind == "output-too-large"
    assert BdExitError.kind == "bad-exit"
    assert BdParseError.kind == "parse-error"
