"""JSON trailer codec.

The trailer is an 11-byte marker followed directly by a UTF-8 JSON object.
Two marker spellings exist, differing only in the final byte (CR vs LF).
Bytes after the closing brace are unrelated data and are left alone.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from .board_doc import default_document
from .bytes_util import Buffer, find_pattern
from .errors import MALFORMED_JSON, BoardFormatError
from .types import JsonTrailer, LoadWarning, Region

log = logging.getLogger(__name__)

MARKER_CR = bytes((0x3D, 0x3D, 0x3D, 0x50, 0x43, 0x42, 0xB8, 0xBD, 0xBC, 0xD3, 0x0D))
MARKER_LF = bytes((0x3D, 0x3D, 0x3D, 0x50, 0x43, 0x42, 0xB8, 0xBD, 0xBC, 0xD3, 0x0A))
JSON_MARKERS = (MARKER_CR, MARKER_LF)
MARKER_SIZE = len(MARKER_CR)

_TAB, _LF, _CR = 0x09, 0x0A, 0x0D


def find_json_marker(buf: Buffer, start: int = 0) -> Tuple[int, bytes]:
    """Return `(offset, marker)` for the lowest-offset marker, or `(-1, b"")`."""
    best = -1
    best_marker = b""
    for marker in JSON_MARKERS:
        off = find_pattern(buf, marker, start)
        if off >= 0 and (best < 0 or off < best):
            best = off
            best_marker = marker
    return int(best), best_marker


def _is_text_byte(b: int) -> bool:
    return 0x20 <= b <= 0x7E or b in (_TAB, _LF, _CR)


def find_json_end(buf: Buffer, start: int) -> int:
    """Offset just past the object starting at or after `start`.

    Braces inside strings do not count. Before the first `{` opens, a byte
    outside printable ASCII/TAB/LF/CR ends the scan at that byte. An object
    that never closes runs to the end of the buffer.
    """
    depth = 0
    in_string = False
    escaped = False
    data = bytes(buf)
    for i in range(int(start), len(data)):
        b = data[i]
        if in_string:
            if not escaped and b == 0x22:
                in_string = False
            escaped = (not escaped) and b == 0x5C
        elif b == 0x7B:
            depth += 1
        elif b == 0x7D:
            if depth > 0:
                depth -= 1
                if depth == 0:
                    return i + 1
        elif b == 0x22:
            in_string = True

        if depth == 0 and not _is_text_byte(b):
            return i
    return len(data)


def parse_json_trailer(buf: Buffer) -> Tuple[Optional[JsonTrailer], List[LoadWarning]]:
    """Locate and decode the trailer. Absence is not a warning; a bad payload is."""
    marker_off, marker = find_json_marker(buf)
    if marker_off < 0:
        log.debug("JSON marker not found (checked 0D and 0A variants)")
        return None, []

    variant = "0D" if marker == MARKER_CR else "0A"
    payload_start = marker_off + MARKER_SIZE
    payload_end = find_json_end(buf, payload_start)
    log.debug(
        "JSON marker (%s variant) at %d, payload [%d, %d)",
        variant,
        marker_off,
        payload_start,
        payload_end,
    )
    if payload_end <= payload_start:
        msg = "no JSON data found after marker"
        log.warning(msg)
        return None, [LoadWarning(MALFORMED_JSON, msg, payload_start)]

    try:
        text = bytes(buf[payload_start:payload_end]).decode("utf-8")
        document = json.loads(text)
    except (ValueError, RecursionError) as e:
        msg = f"error parsing JSON trailer: {e}"
        log.warning(msg)
        return None, [LoadWarning(MALFORMED_JSON, msg, payload_start)]
    if not isinstance(document, dict):
        msg = f"JSON trailer is not an object (got {type(document).__name__})"
        log.warning(msg)
        return None, [LoadWarning(MALFORMED_JSON, msg, payload_start)]

    log.debug(
        "JSON trailer parsed: %d parts, %d nets",
        len(document.get("part") or []),
        len(document.get("net") or []),
    )
    trailer = JsonTrailer(
        marker_offset=int(marker_off),
        payload_start=int(payload_start),
        payload_end=int(payload_end),
        document=document,
        marker=bytes(marker),
    )
    return trailer, []


def encode_document(document: Dict[str, Any]) -> bytes:
    """Compact single-line JSON (no inserted whitespace), UTF-8."""
    if not isinstance(document, dict):
        raise BoardFormatError("JSON trailer document must be an object")
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


def json_trailer_region(
    trailer: JsonTrailer, document: Optional[Dict[str, Any]] = None
) -> Region:
    doc = trailer.document if document is None else document
    new_bytes = encode_document(doc)
    log.debug(
        "JSON rebuild: old size=%d new size=%d",
        trailer.payload_size,
        len(new_bytes),
    )
    return Region(
        original_start=int(trailer.payload_start),
        original_end=int(trailer.payload_end),
        new_bytes=new_bytes,
    )


def append_json_trailer(
    buf: Buffer,
    document: Optional[Dict[str, Any]] = None,
    *,
    marker: bytes = MARKER_CR,
    indent: Optional[int] = 2,
) -> bytes:
    """Return `buf` + marker + document. Refuses if a trailer marker already exists."""
    if bytes(marker) not in JSON_MARKERS:
        raise ValueError("unknown JSON trailer marker")
    existing, _ = find_json_marker(buf)
    if existing >= 0:
        raise BoardFormatError(f"JSON trailer already present at offset {existing}")
    doc = default_document() if document is None else document
    if not isinstance(doc, dict):
        raise BoardFormatError("JSON trailer document must be an object")
    payload = json.dumps(doc, indent=indent, ensure_ascii=False).encode("utf-8")
    log.debug(
        "appending JSON trailer: marker at %d, payload at %d (%d bytes)",
        len(buf),
        len(buf) + MARKER_SIZE,
        len(payload),
    )
    return bytes(buf) + bytes(marker) + payload
