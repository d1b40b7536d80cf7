"""Splice replacement regions into a board image.

Regions are given against the *original* buffer, in ascending order and
disjoint. Every byte outside a region is copied through unchanged; bytes after
a resized region simply move. Absolute offsets of later structures are not
shifted here: callers locate them again in the output.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from .bytes_util import Buffer
from .errors import PatchOverflowError
from .types import Region

log = logging.getLogger(__name__)


def _check_regions(size: int, regions: Sequence[Region]) -> None:
    prev_end = 0
    for i, r in enumerate(regions):
        start = int(r.original_start)
        end = int(r.original_end)
        if start < 0 or end < start or end > size:
            raise PatchOverflowError(
                f"region {i} [{start}, {end}) out of range for buffer of {size} bytes"
            )
        if start < prev_end:
            raise PatchOverflowError(
                f"region {i} [{start}, {end}) overlaps or precedes previous region (end {prev_end})"
            )
        prev_end = end


def patched_size(size: int, regions: Sequence[Region]) -> int:
    return int(size) + sum(int(r.delta) for r in regions)


def apply_regions(buf: Buffer, regions: Sequence[Region]) -> bytes:
    """Return a new buffer with every region's `new_bytes` spliced in."""
    src = memoryview(bytes(buf))
    regs: List[Region] = list(regions)
    _check_regions(len(src), regs)
    if not regs:
        return src.tobytes()

    new_size = patched_size(len(src), regs)
    out = bytearray(new_size)

    def put(at: int, chunk: Buffer) -> int:
        n = len(chunk)
        if at < 0 or at + n > len(out):
            raise PatchOverflowError(
                f"write of {n} bytes at {at} exceeds output buffer of {len(out)} bytes"
            )
        out[at : at + n] = chunk
        return at + n

    src_pos = 0
    dst_pos = 0
    for r in regs:
        dst_pos = put(dst_pos, src[src_pos : int(r.original_start)])
        dst_pos = put(dst_pos, r.new_bytes)
        log.debug(
            "region [%d, %d) -> %d bytes at %d (delta %+d)",
            r.original_start,
            r.original_end,
            len(r.new_bytes),
            dst_pos - len(r.new_bytes),
            r.delta,
        )
        src_pos = int(r.original_end)
    dst_pos = put(dst_pos, src[src_pos:])

    if dst_pos != new_size:
        raise PatchOverflowError(
            f"patched size mismatch: wrote {dst_pos} bytes, expected {new_size}"
        )
    return bytes(out)


def apply_region(buf: Buffer, region: Region) -> bytes:
    return apply_regions(buf, (region,))
