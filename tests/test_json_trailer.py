from __future__ import annotations

import json

import pytest

from board_builders import trailer
from io_pcb_board.core.errors import MALFORMED_JSON, BoardFormatError
from io_pcb_board.core.json_trailer import (
    MARKER_CR,
    MARKER_LF,
    MARKER_SIZE,
    append_json_trailer,
    encode_document,
    find_json_end,
    find_json_marker,
    json_trailer_region,
    parse_json_trailer,
)
from io_pcb_board.core.patcher import apply_region


def test_no_marker_is_not_a_warning():
    t, warnings = parse_json_trailer(b"\x00" * 200)
    assert t is None
    assert warnings == []


def test_brace_inside_string_does_not_close():
    buf = b"PREFIX" + trailer({"a": "}"}, after=b"\x00\x01")
    t, warnings = parse_json_trailer(buf)
    assert warnings == []
    assert t.document == {"a": "}"}
    assert t.payload_size == 9
    assert t.marker_offset == 6
    assert t.payload_start == 6 + MARKER_SIZE
    assert buf[t.payload_end :] == b"\x00\x01"


def test_escaped_quote_stays_in_string():
    payload = rb'{"k":"a\"}b","n":{"x":1}}'
    buf = MARKER_CR + payload + b"{{{"
    assert find_json_end(buf, MARKER_SIZE) == MARKER_SIZE + len(payload)
    t, _ = parse_json_trailer(buf)
    assert t.document == {"k": 'a"}b', "n": {"x": 1}}


def test_stray_close_before_open_is_ignored():
    buf = b"} {\"a\":1}"
    assert find_json_end(buf, 0) == len(buf)


def test_lf_marker_only():
    buf = b"\x01\x02" + trailer({"part": []}, marker=MARKER_LF)
    t, warnings = parse_json_trailer(buf)
    assert warnings == []
    assert t.marker == MARKER_LF
    assert t.document == {"part": []}


def test_lower_offset_marker_wins():
    buf = trailer({"first": 1}, marker=MARKER_LF) + b"\x00" + trailer({"second": 2})
    off, marker = find_json_marker(buf)
    assert off == 0
    assert marker == MARKER_LF
    t, _ = parse_json_trailer(buf)
    assert t.document == {"first": 1}


def test_marker_followed_by_binary_is_empty_payload():
    buf = MARKER_CR + b"\x00{\"a\":1}"
    t, warnings = parse_json_trailer(buf)
    assert t is None
    assert [w.kind for w in warnings] == [MALFORMED_JSON]
    assert "no JSON data" in warnings[0].message


def test_malformed_payload_warns():
    buf = MARKER_CR + b'{"a": tru}'
    t, warnings = parse_json_trailer(buf)
    assert t is None
    assert [w.kind for w in warnings] == [MALFORMED_JSON]
    assert warnings[0].offset == MARKER_SIZE


def test_non_object_payload_warns():
    buf = MARKER_CR + b'"just text"\x00'
    t, warnings = parse_json_trailer(buf)
    assert t is None
    assert [w.kind for w in warnings] == [MALFORMED_JSON]


def test_unclosed_object_runs_to_end():
    buf = MARKER_CR + b'{"a":{"b":1}'
    assert find_json_end(buf, MARKER_SIZE) == len(buf)


def test_encode_is_compact_and_keeps_unknown_keys():
    doc = {"part": [{"reference": "U1", "pad": []}], "vendor": {"rev": "Ω"}}
    out = encode_document(doc)
    assert b" " not in out
    assert b"\n" not in out
    assert json.loads(out.decode("utf-8")) == doc
    assert "Ω".encode("utf-8") in out


def test_encode_rejects_non_object():
    with pytest.raises(BoardFormatError):
        encode_document(["not", "an", "object"])


def test_region_replaces_payload_only():
    buf = b"HEAD" + trailer({"a": "}"}, after=b"\xff\xee")
    t, _ = parse_json_trailer(buf)
    new_doc = dict(t.document, b=[1, 2, 3])
    out = apply_region(buf, json_trailer_region(t, new_doc))
    assert out.startswith(b"HEAD" + MARKER_CR)
    assert out.endswith(b"\xff\xee")
    t2, _ = parse_json_trailer(out)
    assert t2.document == new_doc


def test_append_default_document():
    out = append_json_trailer(b"\x00" * 16)
    t, warnings = parse_json_trailer(out)
    assert warnings == []
    assert t.marker_offset == 16
    assert t.marker == MARKER_CR
    assert t.document["part"][0]["reference"] == "U1"
    assert t.document["net"][0]["name"] == "NET1"
    # pretty-printed on creation
    assert b"\n" in out[t.payload_start :]


def test_append_with_lf_marker_and_document():
    out = append_json_trailer(b"\x00" * 4, {"net": []}, marker=MARKER_LF, indent=None)
    assert out == b"\x00" * 4 + MARKER_LF + b'{"net": []}'


def test_append_refuses_existing_marker():
    buf = b"\x00" + trailer({})
    with pytest.raises(BoardFormatError):
        append_json_trailer(buf)


def test_append_rejects_unknown_marker():
    with pytest.raises(ValueError):
        append_json_trailer(b"", marker=b"===")
