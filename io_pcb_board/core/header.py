"""Header conventions that locate the net block inside a board image.

Two conventions are seen in sample files:
- `relative-0x20`: `start = 0x20 + u32[0x28]`
- `skip-32`: `start = u32[40] + 32` (intermediate pointer, size field 32 bytes on)

Both read the same header word and land on the same offset; they are kept as
separate variants so a file can be tagged with the convention that validated.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

from .bytes_util import Buffer, read_u32le
from .errors import MALFORMED_HEADER
from .types import HeaderLayout, LoadWarning

log = logging.getLogger(__name__)

MIN_HEADER_SIZE = 0x44

LAYOUT_AUTO = "auto"
LAYOUT_RELATIVE_0X20 = "relative-0x20"
LAYOUT_SKIP_32 = "skip-32"


def _start_relative_0x20(buf: Buffer) -> int:
    return 0x20 + read_u32le(buf, 0x28)


def _start_skip_32(buf: Buffer) -> int:
    return read_u32le(buf, 40) + 32


_VARIANTS: Dict[str, Callable[[Buffer], int]] = {
    LAYOUT_RELATIVE_0X20: _start_relative_0x20,
    LAYOUT_SKIP_32: _start_skip_32,
}

LAYOUT_KINDS = (LAYOUT_AUTO,) + tuple(_VARIANTS)


def _block_fits(buf: Buffer, start: int) -> bool:
    if start + 4 >= len(buf):
        return False
    return start + 4 + read_u32le(buf, start) <= len(buf)


def resolve_header_layout(
    buf: Buffer, *, layout: str = LAYOUT_AUTO
) -> Tuple[Optional[HeaderLayout], List[LoadWarning]]:
    """Pick the header convention for `buf`.

    With `layout="auto"` the first variant whose size field and declared block
    both fit wins; failing that, the first whose size field fits. A file too
    short for the header, or with no usable variant, yields `None` plus a
    `malformed-header` warning.
    """
    layout = str(layout or LAYOUT_AUTO).strip()
    if layout not in LAYOUT_KINDS:
        raise ValueError(f"unknown header layout: {layout!r}")

    if len(buf) < MIN_HEADER_SIZE:
        msg = f"file too small for header (< 0x{MIN_HEADER_SIZE:X} bytes, size={len(buf)})"
        log.warning(msg)
        return None, [LoadWarning(MALFORMED_HEADER, msg)]

    kinds = list(_VARIANTS) if layout == LAYOUT_AUTO else [layout]
    candidates = [(k, int(_VARIANTS[k](buf))) for k in kinds]
    for kind, start in candidates:
        log.debug("header variant %s -> net block at %d (0x%X)", kind, start, start)

    chosen = next(((k, s) for k, s in candidates if _block_fits(buf, s)), None)
    if chosen is None:
        chosen = next(((k, s) for k, s in candidates if s + 4 < len(buf)), None)
    if chosen is None:
        kind, start = candidates[0]
        msg = f"net block start {start} exceeds file size {len(buf)}"
        log.warning(msg)
        return None, [LoadWarning(MALFORMED_HEADER, msg, start)]

    kind, start = chosen
    log.debug("using header layout %s (net block at 0x%X)", kind, start)
    return HeaderLayout(kind=kind, start_offset=int(start)), []
