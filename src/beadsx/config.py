from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

import tomllib


DEFAULT_COMMAND = "bd"
COMMAND_ENV_VAR = "BDX_BD_PATH"

MIN_RECENT_WINDOW_MINUTES = 1
MAX_RECENT_WINDOW_MINUTES = 10080  # one week
DEFAULT_RECENT_WINDOW_MINUTES = 60


@dataclass(frozen=True)
class BeadsConfig:
    command_path: str | None = None
    recent_window_minutes: int | float = DEFAULT_RECENT_WINDOW_MINUTES
    use_jsonl_mode: bool = False
    allow_fallback_on_broken: bool = False
    auto_expand_open: bool = True
    short_ids: bool = False


@dataclass(frozen=True)
class BdxFileConfig:
    path: Path
    config: BeadsConfig
    error: str | None = None


class ConfigValidationError(ValueError):
    pass


def validate_recent_window_minutes(value: object) -> tuple[int | float, str | None]:
    """Clamp a configured window to [1, 10080] minutes.

    Returns ``(value, warning)``; ``warning`` is None when the value was used
    unchanged.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return (
            DEFAULT_RECENT_WINDOW_MINUTES,
            f"Invalid recentWindowMinutes config, using default {DEFAULT_RECENT_WINDOW_MINUTES} minutes",
        )
    if value < MIN_RECENT_WINDOW_MINUTES:
        return (
            MIN_RECENT_WINDOW_MINUTES,
            f"recentWindowMinutes ({value}) below minimum, clamping to {MIN_RECENT_WINDOW_MINUTES}",
        )
    if value > MAX_RECENT_WINDOW_MINUTES:
        return (
            MAX_RECENT_WINDOW_MINUTES,
            f"recentWindowMinutes ({value}) above maximum, clamping to {MAX_RECENT_WINDOW_MINUTES}",
        )
    return value, None


def default_config_path(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    base = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "bdx" / "config.toml"


def _as_optional_str(value: object, *, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigValidationError(f"[bdx].{field} must be a string")
    stripped = value.strip()
    return stripped or None


def _as_bool(value: object, *, field: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigValidationError(f"[bdx].{field} must be true or false")
    return value


def _as_number(value: object, *, field: str, default: int) -> int | float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigValidationError(f"[bdx].{field} must be a number")
    return value


def parse_config_table(table: object) -> BeadsConfig:
    if table is None:
        return BeadsConfig()
    if not isinstance(table, dict):
        raise ConfigValidationError("[bdx] must be a table")

    defaults = BeadsConfig()
    return BeadsConfig(
        command_path=_as_optional_str(table.get("command_path"), field="command_path"),
        recent_window_minutes=_as_number(
            table.get("recent_window_minutes"),
            field="recent_window_minutes",
            default=defaults.recent_window_minutes,
        ),
        use_jsonl_mode=_as_bool(
            table.get("use_jsonl_mode"), field="use_jsonl_mode", default=defaults.use_jsonl_mode
        ),
        allow_fallback_on_broken=_as_bool(
            table.get("allow_fallback_on_broken"),
            field="allow_fallback_on_broken",
            default=defaults.allow_fallback_on_broken,
        ),
        auto_expand_open=_as_bool(
            table.get("auto_expand_open"), field="auto_expand_open", default=defaults.auto_expand_open
        ),
        short_ids=_as_bool(table.get("short_ids"), field="short_ids", default=defaults.short_ids),
    )


def load_config(path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> BdxFileConfig:
    """Load ``[bdx]`` from the user config file.

    Never raises: a missing file gives defaults, a broken one gives defaults
    plus ``error``.
    """
    cfg_path = path or default_config_path(environ)
    if not cfg_path.exists():
        return BdxFileConfig(path=cfg_path, config=BeadsConfig())

    try:
        data = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        return BdxFileConfig(
            path=cfg_path,
            config=BeadsConfig(),
            error=f"invalid TOML in {cfg_path}: {exc}",
        )
    except OSError as exc:
        return BdxFileConfig(
            path=cfg_path,
            config=BeadsConfig(),
            error=f"cannot read {cfg_path}: {exc}",
        )

    try:
        config = parse_config_table(data.get("bdx"))
    except ConfigValidationError as exc:
        return BdxFileConfig(path=cfg_path, config=BeadsConfig(), error=f"{cfg_path}: {exc}")
    return BdxFileConfig(path=cfg_path, config=config)


def with_overrides(config: BeadsConfig, **overrides: object) -> BeadsConfig:
    """Apply non-None overrides, typically from CLI flags."""
    changes = {key: value for key, value in overrides.items() if value is not None}
    if not changes:
        return config
    return replace(config, **changes)
