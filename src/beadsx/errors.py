"""Failure taxonomy for invoking ``bd``.

Every error carries a short ``kind`` tag and a message that is safe to show
to a user as-is.
"""

from __future__ import annotations

from collections.abc import Sequence


class BdError(Exception):
    kind = "spawn-error"

    def __init__(self, message: str, *, argv: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.argv = list(argv)


class BdNotFoundError(BdError):
    kind = "not-found"


class BdPermissionError(BdError):
    kind = "permission"


class BdTimeoutError(BdError):
    kind = "timeout"

    def __init__(self, message: str, *, argv: Sequence[str] = (), timeout: float = 0.0) -> None:
        super().__init__(message, argv=argv)
        self.timeout = timeout


class BdOutputTooLargeError(BdError):
    kind = "output-too-large"

    def __init__(self, message: str, *, argv: Sequence[str] = (), limit: int = 0) -> None:
        super().__init__(message, argv=argv)
        self.limit = limit


class BdExitError(BdError):
    kind = "bad-exit"

    def __init__(
        self,
        message: str,
        *,
        argv: Sequence[str] = (),
        returncode: int,
        stderr: str = "",
    ) -> None:
        super().__init__(message, argv=argv)
        self.returncode = returncode
        self.stderr = stderr


class BdParseError(BdError):
    kind = "parse-error"

    def __init__(self, message: str, *, failed_lines: int = 0, total_lines: int = 0) -> None:
        super().__init__(message)
        self.failed_lines = failed_lines
        self.total_lines = total_lines


class BdUnexpectedFormatError(BdError):
    kind = "unexpected-format"


class BdBrokenExecutableError(BdError):
    """The configured command exists but does not run correctly."""

    kind = "broken-executable"

    def __init__(self, message: str, *, command: str, cause: BdError) -> None:
        super().__init__(message, argv=[command])
        self.command = command
        self.cause = cause


def _subcommand(argv: Sequence[str]) -> str:
    words = [arg for arg in argv[1:] if not arg.startswith("-")]
    return words[0] if words else ""


def format_bd_error(exc: BdError) -> str:
    """Render ``exc`` as one actionable line for a notification or status bar."""
    if isinstance(exc, BdNotFoundError):
        return (
            "'bd' command not found. Is it installed and in your PATH? "
            "You can also set an explicit command path."
        )
    if isinstance(exc, BdPermissionError):
        return f"Permission denied: {exc.message}. Check file permissions."
    if isinstance(exc, BdTimeoutError):
        sub = _subcommand(exc.argv)
        what = f"'bd {sub}'" if sub else "'bd'"
        return f"{what} timed out after {exc.timeout:g}s. The issue database may be locked or very large."
    if isinstance(exc, BdOutputTooLargeError):
        mb = exc.limit // (1024 * 1024)
        return f"bd output too large (over {mb} MB). Try compacting your data with 'bd compact'."
    if isinstance(exc, BdExitError):
        sub = _subcommand(exc.argv)
        what = f"bd {sub}" if sub else "bd"
        return (
            f"'{what}' failed with exit code {exc.returncode}. "
            f"Try running '{what}' manually in the workspace to see the full error."
        )
    if isinstance(exc, BdBrokenExecutableError):
        return (
            f"Configured bd command '{exc.command}' is broken ({exc.cause.kind}). "
            "Fix the command path or enable allow_fallback_on_broken."
        )
    return exc.message
