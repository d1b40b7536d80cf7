"""Decode-once / edit-in-memory / rebuild-on-save sessions over a board image.

No UI logic lives here. The front end supplies raw bytes, edits the decoded
`NetRecord`s and JSON document, and asks for a rebuilt image.
"""

from __future__ import annotations

import copy
import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .board_doc import validate_json_text
from .bytes_util import Buffer, hex_lines
from .errors import MALFORMED_JSON, BoardFormatError, RebuildError, SessionBusyError
from .header import LAYOUT_AUTO
from .json_trailer import (
    MARKER_CR,
    append_json_trailer,
    json_trailer_region,
    parse_json_trailer,
)
from .netlist import check_net_name, describe_block_edges, netlist_region, parse_netlist
from .patcher import apply_region
from .types import JsonTrailer, LoadResult, LoadWarning, NetlistBlock, NetRecord, Region

log = logging.getLogger(__name__)


def load(data: Buffer, *, layout: str = LAYOUT_AUTO) -> LoadResult:
    """Decode the net block and JSON trailer of `data`. Never raises on bad input."""
    netlist, warnings = parse_netlist(data, layout=layout)
    trailer, json_warnings = parse_json_trailer(data)
    warnings.extend(json_warnings)
    return LoadResult(netlist=netlist, json=trailer, warnings=warnings)


def _relocate_trailer_region(data: bytes, document: Dict[str, Any]) -> Region:
    trailer, warnings = parse_json_trailer(data)
    if trailer is None:
        detail = "; ".join(str(w) for w in warnings) or "marker not found"
        raise BoardFormatError(f"JSON trailer not found in rebuilt image: {detail}")
    return json_trailer_region(trailer, document)


def _record_keys(records: Sequence[NetRecord]) -> List[tuple]:
    return [(int(r.index), str(r.name), int(r.encoded_size)) for r in records]


def build_image(
    data: Buffer,
    netlist: Optional[NetlistBlock],
    records: Optional[Sequence[NetRecord]],
    document: Optional[Dict[str, Any]],
) -> bytes:
    """Splice the rebuilt net block, then the trailer, into a copy of `data`.

    The trailer is located again in the intermediate image rather than shifted
    by the net block's size difference.
    """
    out = bytes(data)
    if netlist is not None:
        recs = list(netlist.records if records is None else records)
        region = netlist_region(netlist, recs, image_size=len(out))
        for row in describe_block_edges(out, netlist):
            log.debug("before: %s", row)
        out = apply_region(out, region)
        log.debug(
            "net block rebuilt: %d records, file %d -> %d bytes",
            len(recs),
            len(data),
            len(out),
        )
    if document is not None:
        region = _relocate_trailer_region(out, document)
        out = apply_region(out, region)
        log.debug("JSON trailer rebuilt at %d (%d bytes)", region.original_start, len(region.new_bytes))
    return out


def rebuild(
    data: Buffer,
    records: Optional[Sequence[NetRecord]] = None,
    document: Optional[Dict[str, Any]] = None,
    *,
    layout: str = LAYOUT_AUTO,
) -> bytes:
    """One-shot rebuild of `data` with replacement records and/or document."""
    session = EditSession(data, layout=layout)
    return session.rebuild(records=records, document=document)


def add_json_trailer(
    data: Buffer, document: Optional[Dict[str, Any]] = None, *, marker: bytes = MARKER_CR
) -> bytes:
    return append_json_trailer(data, document, marker=marker)


class EditSession:
    """Owns one board image plus its decoded net block and JSON trailer.

    The image is only replaced by a rebuild that completed and verified.
    """

    def __init__(self, data: Buffer, *, layout: str = LAYOUT_AUTO):
        self.layout = str(layout or LAYOUT_AUTO)
        self._image = b""
        self._busy = False
        self.netlist: Optional[NetlistBlock] = None
        self.trailer: Optional[JsonTrailer] = None
        self.warnings: List[LoadWarning] = []
        self.dirty = False
        self.open(data)

    @property
    def image(self) -> bytes:
        return self._image

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def records(self) -> List[NetRecord]:
        return self.netlist.records if self.netlist is not None else []

    @property
    def document(self) -> Optional[Dict[str, Any]]:
        return self.trailer.document if self.trailer is not None else None

    @contextmanager
    def _exclusive(self, what: str) -> Iterator[None]:
        if self._busy:
            raise SessionBusyError(f"cannot {what}: a rebuild is already in progress")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def open(self, data: Buffer) -> LoadResult:
        """Replace the image, discarding any unsaved edits."""
        with self._exclusive("load"):
            self._image = bytes(data)
            log.info("loaded board image: %d bytes", len(self._image))
            return self._decode()

    def reparse(self) -> LoadResult:
        with self._exclusive("reparse"):
            return self._decode()

    def _decode(self) -> LoadResult:
        res = load(self._image, layout=self.layout)
        self.netlist = res.netlist
        self.trailer = res.json
        self.warnings = list(res.warnings)
        self.dirty = False
        log.info(
            "decoded %d nets, JSON trailer %s, %d warnings",
            len(self.records),
            "present" if self.trailer is not None else "absent",
            len(self.warnings),
        )
        return res

    def result(self) -> LoadResult:
        return LoadResult(netlist=self.netlist, json=self.trailer, warnings=list(self.warnings))

    def rename_net(self, position: int, name: str) -> NetRecord:
        """Rename the record at list `position` (not its stored index)."""
        check_net_name(name)
        recs = self.records
        if position < 0 or position >= len(recs):
            raise IndexError(f"net position out of range: {position}")
        rec = recs[position]
        old_name, old_size = rec.name, rec.encoded_size
        rec.name = name
        rec.refresh_size()
        self.dirty = True
        log.debug(
            "net %d renamed %r -> %r (size %d -> %d)",
            position,
            old_name,
            name,
            old_size,
            rec.encoded_size,
        )
        return rec

    def set_document(self, document: Dict[str, Any]) -> None:
        if self.trailer is None:
            raise BoardFormatError("no JSON trailer in this file; add one first")
        if not isinstance(document, dict):
            raise BoardFormatError("JSON trailer document must be an object")
        self.trailer.document = document
        self.dirty = True

    def set_document_text(self, text: str) -> None:
        err = validate_json_text(text)
        if err is not None:
            raise BoardFormatError(f"invalid JSON: {err}")
        self.set_document(json.loads(text))

    def mark_dirty(self) -> None:
        self.dirty = True

    def hex_lines(self, offset: int = 0, count: int = 50) -> List[str]:
        return hex_lines(self._image, offset, count)

    def rebuild(
        self,
        records: Optional[Sequence[NetRecord]] = None,
        document: Optional[Dict[str, Any]] = None,
    ) -> bytes:
        """Re-encode edits into a new image, verify it, then make it current.

        `records`/`document` replace the session's decoded values when given.
        Any failure raises `RebuildError` and leaves the current image as is.
        """
        with self._exclusive("rebuild"):
            if records is not None and self.netlist is None:
                raise RebuildError("no net block in this file; cannot write net records")
            recs = list(self.records if records is None else records)
            doc = document
            if doc is None and self.trailer is not None:
                doc = self.trailer.document
            if doc is not None and self.trailer is None:
                raise RebuildError("no JSON trailer in this file; add one first")
            doc = copy.deepcopy(doc)

            try:
                new_image = build_image(self._image, self.netlist, recs, doc)
                res = self._verify(new_image, recs, doc)
            except (TypeError, ValueError, RecursionError) as e:
                log.error("rebuild failed: %s", e)
                if isinstance(e, RebuildError):
                    raise
                raise RebuildError(f"rebuild failed: {e}") from e

            self._image = new_image
            self.netlist = res.netlist
            self.trailer = res.json
            self.warnings = list(res.warnings)
            self.dirty = False
            log.info("rebuild complete: %d bytes", len(new_image))
            return new_image

    def _verify(
        self,
        new_image: bytes,
        records: Sequence[NetRecord],
        document: Optional[Dict[str, Any]],
    ) -> LoadResult:
        layout = self.netlist.layout if self.netlist is not None else self.layout
        res = load(new_image, layout=layout)
        if self.netlist is not None:
            if res.netlist is None:
                raise RebuildError("patched, but verify failed: net block not found")
            want = _record_keys(records)
            got = _record_keys(res.netlist.records)
            if got != want:
                raise RebuildError(
                    f"patched, but verify failed (records differ): expected={len(want)} got={len(got)}"
                )
            if res.netlist.total_size != sum(r.encoded_size for r in records):
                raise RebuildError("patched, but verify failed (net block size differs)")
        if document is not None:
            if res.json is None or res.json.document != document:
                raise RebuildError("patched, but verify failed (JSON trailer differs)")
        return res

    def add_json_trailer(
        self, document: Optional[Dict[str, Any]] = None, *, marker: bytes = MARKER_CR
    ) -> bytes:
        """Append marker + document (default document when `None`) and re-decode."""
        with self._exclusive("add JSON trailer"):
            if self.trailer is not None:
                raise BoardFormatError("JSON data already exists in this file")
            new_image = append_json_trailer(self._image, document, marker=marker)
            trailer, warnings = parse_json_trailer(new_image)
            if trailer is None:
                raise BoardFormatError(
                    "appended JSON trailer could not be decoded: "
                    + "; ".join(str(w) for w in warnings)
                )
            self._image = new_image
            self.trailer = trailer
            self.warnings = [w for w in self.warnings if w.kind != MALFORMED_JSON]
            self.dirty = True
            log.info("JSON trailer added at offset %d", trailer.marker_offset)
            return new_image
