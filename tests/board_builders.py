"""Byte builders for synthetic board images used across the tests."""
from __future__ import annotations

import json
import struct
from typing import Iterable, Optional, Tuple

from io_pcb_board.core.json_trailer import MARKER_CR
from io_pcb_board.core.netlist import END_SENTINEL

HEADER_SIZE = 0x44
# u32 at 0x28 is relative to 0x20, so 0x24 puts the net block right after the header
BLOCK_START = 0x44


def entry(index: int, name: bytes) -> bytes:
    return struct.pack("<II", 8 + len(name), index) + name


def entries(*pairs: Tuple[int, str]) -> bytes:
    return b"".join(entry(i, n.encode("utf-8")) for i, n in pairs)


def build_board(
    data: bytes,
    *,
    declared_size: Optional[int] = None,
    sentinel: bool = False,
    tail: bytes = b"",
    header_fill: int = 0x00,
) -> bytes:
    buf = bytearray([header_fill]) * HEADER_SIZE
    struct.pack_into("<I", buf, 0x28, BLOCK_START - 0x20)
    size = len(data) if declared_size is None else declared_size
    buf += struct.pack("<I", size)
    buf += data
    if sentinel:
        buf += END_SENTINEL
    buf += tail
    return bytes(buf)


def trailer(document: object, *, marker: bytes = MARKER_CR, after: bytes = b"") -> bytes:
    return marker + json.dumps(document, separators=(",", ":")).encode("utf-8") + after


def sample_board(
    pairs: Iterable[Tuple[int, str]] = ((1, "GND"), (2, "VCC"), (7, "NETA")),
    *,
    document: Optional[dict] = None,
    gap: bytes = b"\x11\x22\x33\x44",
    after: bytes = b"\x00\xfe\xed",
) -> bytes:
    """Net block, some unrelated bytes, then an optional JSON trailer and binary tail."""
    tail = gap
    if document is not None:
        tail += trailer(document, after=after)
    return build_board(entries(*pairs), tail=tail)
