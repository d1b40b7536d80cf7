"""Board image (.pcb) net block and JSON trailer editor.

`core` is format-only and has no front-end imports; `cli` is the command-line
front end. The names below are the surface a front end needs.
"""

from __future__ import annotations

from .core.errors import (
    BoardFormatError,
    PatchOverflowError,
    RebuildError,
    SessionBusyError,
)
from .core.session import EditSession, add_json_trailer, load, rebuild
from .core.types import JsonTrailer, LoadResult, LoadWarning, NetlistBlock, NetRecord

__version__ = "0.1.0"

__all__ = [
    "BoardFormatError",
    "EditSession",
    "JsonTrailer",
    "LoadResult",
    "LoadWarning",
    "NetRecord",
    "NetlistBlock",
    "PatchOverflowError",
    "RebuildError",
    "SessionBusyError",
    "add_json_trailer",
    "load",
    "rebuild",
]
