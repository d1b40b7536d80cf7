"""Net block codec.

Layout (all little-endian u32):
- `u32 block_size` at `start` (bytes of entry data that follow; excludes itself)
- repeated entries `[u32 entry_size][u32 index][name: entry_size - 8 bytes]`
- optional 11-byte end sentinel `76 36 76 36 35 35 35 76 36 76 36`

`entry_size` counts the whole entry, including its own 8 header bytes.
"""

from __future__ import annotations

import logging
import re
import struct
from typing import Iterable, List, Optional, Tuple

from .bytes_util import Buffer, _ByteCursor, hex_lines, read_u32le
from .errors import (
    BLOCK_SIZE,
    MALFORMED_ENTRY,
    OVERFLOW_GUARD,
    BoardFormatError,
)
from .header import LAYOUT_AUTO, resolve_header_layout
from .types import NET_ENTRY_HEADER, LoadWarning, NetlistBlock, NetRecord, Region

log = logging.getLogger(__name__)

END_SENTINEL = bytes(
    (0x76, 0x36, 0x76, 0x36, 0x35, 0x35, 0x35, 0x76, 0x36, 0x76, 0x36)
)
MIN_ENTRY_SIZE = NET_ENTRY_HEADER
MAX_ENTRY_SIZE = 1000
MAX_ENTRIES = 10000

_CONTROL_CHARS = re.compile("[\x00-\x1f\x7f-\x9f]")


def clean_net_name(raw: bytes) -> str:
    """Decode stored name bytes; controls are stripped, spaces kept."""
    try:
        text = bytes(raw).decode("utf-8")
    except UnicodeDecodeError:
        text = bytes(b for b in bytes(raw) if 0 < b < 0x80).decode("ascii")
    return _CONTROL_CHARS.sub("", text)


def parse_netlist(
    buf: Buffer, *, layout: str = LAYOUT_AUTO
) -> Tuple[Optional[NetlistBlock], List[LoadWarning]]:
    """Decode the net block of `buf`.

    Never raises for malformed input: problems stop decoding at the point they
    are found and are returned as warnings next to whatever decoded cleanly.
    """
    hdr, warnings = resolve_header_layout(buf, layout=layout)
    if hdr is None:
        return None, warnings

    start = int(hdr.start_offset)
    total_size = read_u32le(buf, start)
    entry_start = start + 4
    block_end = start + total_size
    log.debug(
        "net block: start=%d size=%d entries from %d (end hint %d)",
        start,
        total_size,
        entry_start,
        block_end,
    )
    if entry_start + total_size > len(buf):
        msg = (
            f"declared net block size {total_size} runs past end of file "
            f"({entry_start + total_size} > {len(buf)})"
        )
        log.warning(msg)
        warnings.append(LoadWarning(BLOCK_SIZE, msg, start))

    records: List[NetRecord] = []
    r = _ByteCursor(buf, entry_start)
    seen = 0
    while r.tell < block_end and r.tell + NET_ENTRY_HEADER < len(buf):
        at = r.tell
        if r.at(END_SENTINEL):
            log.debug("end sentinel at %d", at)
            break
        if seen >= MAX_ENTRIES:
            msg = f"reached {MAX_ENTRIES} entries, stopping"
            log.warning(msg)
            warnings.append(LoadWarning(OVERFLOW_GUARD, msg, at))
            break

        size = r.peek_u32()
        if size < MIN_ENTRY_SIZE or size > MAX_ENTRY_SIZE:
            msg = f"invalid net entry size {size}"
            log.warning("%s at %d", msg, at)
            warnings.append(LoadWarning(MALFORMED_ENTRY, msg, at))
            break
        if size > r.remaining:
            msg = f"net entry size {size} exceeds file boundary"
            log.warning("%s at %d", msg, at)
            warnings.append(LoadWarning(MALFORMED_ENTRY, msg, at))
            break

        r.skip(4)
        index = r.u32()
        name_raw = r.slice(size - NET_ENTRY_HEADER)
        r.skip(size - NET_ENTRY_HEADER)
        name = clean_net_name(name_raw)
        log.debug("entry %d at %d: size=%d index=%d name=%r", seen, at, size, index, name)
        seen += 1
        if name:
            records.append(NetRecord(index=int(index), name=name, encoded_size=int(size)))

    log.debug("parsed %d entries, %d kept", seen, len(records))
    block = NetlistBlock(
        start_offset=start,
        total_size=int(total_size),
        records=records,
        layout=hdr.kind,
    )
    return block, warnings


def check_net_name(name: str) -> bytes:
    """Validate a net name for storage and return its UTF-8 bytes."""
    if not isinstance(name, str):
        raise BoardFormatError(f"net name must be a string, got {type(name).__name__}")
    if not name:
        raise BoardFormatError("net name cannot be empty")
    if _CONTROL_CHARS.search(name):
        raise BoardFormatError(f"net name contains control characters: {name!r}")
    raw = name.encode("utf-8")
    if NET_ENTRY_HEADER + len(raw) > MAX_ENTRY_SIZE:
        raise BoardFormatError(
            f"net name too long: {len(raw)} bytes (entry limit {MAX_ENTRY_SIZE})"
        )
    return raw


def encode_netlist_entries(records: Iterable[NetRecord]) -> bytes:
    """Concatenate entries in caller order, recomputing every `encoded_size`."""
    out = bytearray()
    for rec in records:
        name_b = check_net_name(rec.name)
        index = int(rec.index)
        if index < 0 or index > 0xFFFFFFFF:
            raise BoardFormatError(f"net index out of range: {index}")
        rec.encoded_size = NET_ENTRY_HEADER + len(name_b)
        out += struct.pack("<II", rec.encoded_size, index)
        out += name_b
        log.debug("net %r: size=%d", rec.name, rec.encoded_size)
    return bytes(out)


def encode_netlist_block(records: Iterable[NetRecord]) -> bytes:
    entries = encode_netlist_entries(records)
    return struct.pack("<I", len(entries)) + entries


def netlist_region(
    block: NetlistBlock,
    records: Optional[Iterable[NetRecord]] = None,
    *,
    image_size: Optional[int] = None,
) -> Region:
    """Region replacing `[start, start + 4 + old_size)` with the rebuilt block.

    `image_size` clamps the old end when the declared size ran past the file.
    """
    recs = block.records if records is None else records
    new_block = encode_netlist_block(recs)
    end = block.original_end
    if image_size is not None:
        end = min(int(end), int(image_size))
    log.debug(
        "net block rebuild: old size=%d new size=%d (difference %d)",
        block.total_size,
        len(new_block) - 4,
        len(new_block) - 4 - block.total_size,
    )
    return Region(
        original_start=int(block.start_offset),
        original_end=int(end),
        new_bytes=new_block,
    )


def describe_block_edges(buf: Buffer, block: NetlistBlock) -> List[str]:
    """Hex rows around the stored end of `block` (diagnostics for rebuilds)."""
    return hex_lines(buf, max(0, block.original_end - 8), 16)
