"""Bounded little-endian reads and byte-pattern matching over board images.

Reads never raise on short input: `read_u32le` degrades to 0 and
`match_pattern` to False. Callers check bounds before trusting a zero.
"""

from __future__ import annotations

import struct
from typing import List, Sequence, Union

Buffer = Union[bytes, bytearray, memoryview]


def read_u32le(buf: Buffer, offset: int) -> int:
    offset = int(offset)
    if offset < 0 or offset + 4 > len(buf):
        return 0
    return int(struct.unpack_from("<I", buf, offset)[0])


def match_pattern(buf: Buffer, offset: int, pattern: Sequence[int]) -> bool:
    offset = int(offset)
    n = len(pattern)
    if offset < 0 or offset + n > len(buf):
        return False
    return bytes(buf[offset : offset + n]) == bytes(pattern)


def find_pattern(buf: Buffer, pattern: Sequence[int], start: int = 0) -> int:
    """Lowest offset >= `start` where `pattern` occurs, or -1."""
    return int(bytes(buf).find(bytes(pattern), max(0, int(start))))


def hex_lines(buf: Buffer, offset: int = 0, count: int = 50) -> List[str]:
    """Render `count` bytes from `offset` as `Offset N: AA BB ...` rows of 16."""
    offset = max(0, int(offset))
    end = min(len(buf), offset + max(0, int(count)))
    out: List[str] = []
    for row in range(offset, end, 16):
        chunk = bytes(buf[row : min(row + 16, end)])
        out.append(f"Offset {row}: " + " ".join(f"{b:02X}" for b in chunk))
    return out


class _ByteCursor:
    """Forward cursor over an immutable buffer with degrade-to-zero reads."""

    __slots__ = ("_b", "_o")

    def __init__(self, data: Buffer, offset: int = 0):
        self._b = memoryview(bytes(data))
        self._o = int(offset)

    @property
    def tell(self) -> int:
        return self._o

    @property
    def remaining(self) -> int:
        return max(0, len(self._b) - self._o)

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > len(self._b):
            raise ValueError("seek out of range")
        self._o = int(offset)

    def skip(self, size: int) -> None:
        self.seek(self._o + int(size))

    def peek_u32(self) -> int:
        return read_u32le(self._b, self._o)

    def u32(self) -> int:
        v = read_u32le(self._b, self._o)
        self._o += 4
        return v

    def at(self, pattern: Sequence[int]) -> bool:
        return match_pattern(self._b, self._o, pattern)

    def slice(self, size: int) -> bytes:
        o = self._o
        n = o + int(size)
        if n > len(self._b):
            raise EOFError("read past end")
        return self._b[o:n].tobytes()
