from __future__ import annotations

from typing import TYPE_CHECKING

__all__ = [
    "__version__",
    "BeadsConfig",
    "BeadsService",
    "Err",
    "Issue",
    "Ok",
    "PartialErr",
]

__version__ = "0.1.0"

if TYPE_CHECKING:
    from .config import BeadsConfig
    from .service import BeadsService
    from .types import Err, Issue, Ok, PartialErr


def __getattr__(name: str):
    if name == "BeadsConfig":
        from .config import BeadsConfig

        return BeadsConfig
    if name == "BeadsService":
        from .service import BeadsService

        return BeadsService
    if name in {"Err", "Issue", "Ok", "PartialErr"}:
        from .types import Err, Issue, Ok, PartialErr

        return {
            "Err": Err,
            "Issue": Issue,
            "Ok": Ok,
            "PartialErr": PartialErr,
        }[name]
    raise AttributeError(f"module 'beadsx' has no attribute {name!r}")
