"""Exceptions and recoverable-warning kinds for board image codecs."""

from __future__ import annotations

MALFORMED_HEADER = "malformed-header"
MALFORMED_ENTRY = "malformed-entry"
MALFORMED_JSON = "malformed-json"
OVERFLOW_GUARD = "overflow-guard"
BLOCK_SIZE = "block-size"


class BoardFormatError(ValueError):
    pass


class PatchOverflowError(BoardFormatError):
    """A replacement region is unordered, overlapping or out of bounds."""


class RebuildError(BoardFormatError):
    pass


class SessionBusyError(RuntimeError):
    pass
