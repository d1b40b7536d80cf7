from __future__ import annotations

import pytest

import io_pcb_board
from board_builders import BLOCK_START, build_board, entries, entry, sample_board, trailer
from io_pcb_board import (
    BoardFormatError,
    EditSession,
    NetRecord,
    RebuildError,
    SessionBusyError,
    add_json_trailer,
    load,
    rebuild,
)
from io_pcb_board.core import session as session_mod
from io_pcb_board.core.errors import BLOCK_SIZE, MALFORMED_HEADER, MALFORMED_JSON
from io_pcb_board.core.json_trailer import MARKER_CR, MARKER_LF
from io_pcb_board.core.netlist import END_SENTINEL

DOC = {
    "part": [{"reference": "R1", "value": "10k", "alias": "r1", "pad": []}],
    "net": [{"name": "GND", "alias": "ground"}],
    "x-tool": {"keep": True},
}
AFTER = b"\x00\xfe\xed"


def test_load_reports_both_sections():
    res = load(sample_board(document=DOC))
    assert [(r.index, r.name) for r in res.netlist.records] == [(1, "GND"), (2, "VCC"), (7, "NETA")]
    assert res.json.document == DOC
    assert res.warnings == []
    assert res.errors == []


def test_load_collects_warnings_without_raising():
    res = load(build_board(entries((1, "GND")), declared_size=5000))
    assert [w.kind for w in res.warnings] == [BLOCK_SIZE]
    assert res.json is None
    assert str(res.warnings[0]).startswith("[block-size]")


def test_load_trailer_without_usable_header():
    data = b"\x00" * 8 + trailer({"a": 1})
    res = load(data)
    assert res.netlist is None
    assert [w.kind for w in res.warnings] == [MALFORMED_HEADER]
    assert res.json.document == {"a": 1}


def test_worked_example_rename():
    data = build_board(entry(7, b"NETA\x00\x00\x00\x00"), sentinel=True, tail=b"after-sentinel")
    s = EditSession(data)
    assert [(r.index, r.name, r.encoded_size) for r in s.records] == [(7, "NETA", 16)]

    s.rename_net(0, "N1")
    out = s.rebuild()
    block = out[BLOCK_START : BLOCK_START + 4 + 10]
    assert block == b"\x0a\x00\x00\x00" + b"\x0a\x00\x00\x00\x07\x00\x00\x00N1"
    assert out[BLOCK_START + 14 :] == END_SENTINEL + b"after-sentinel"
    assert out[:BLOCK_START] == data[:BLOCK_START]


def test_unmodified_rebuild_is_identical():
    data = sample_board(document=DOC)
    assert EditSession(data).rebuild() == data


def test_rename_relocates_trailer_and_keeps_tail():
    data = sample_board(document=DOC)
    s = EditSession(data)
    rec = s.rename_net(2, "N1")
    assert rec.encoded_size == 10
    assert s.dirty

    out = s.rebuild()
    assert len(out) == len(data) - 2
    assert out.endswith(AFTER)
    assert s.image == out
    assert not s.dirty
    assert [r.name for r in s.records] == ["GND", "VCC", "N1"]
    assert s.netlist.total_size == 32
    assert s.trailer.marker_offset == data.index(MARKER_CR) - 2
    assert s.document == DOC
    assert out[s.netlist.original_end : s.netlist.original_end + 4] == b"\x11\x22\x33\x44"


def test_grow_names_and_document_together():
    data = sample_board(document=DOC)
    s = EditSession(data)
    s.rename_net(0, "GROUND_RETURN")
    doc = s.document
    doc["net"].append({"name": "VBAT", "alias": "battery", "note": "ünïcode"})
    s.mark_dirty()

    out = s.rebuild()
    res = load(out)
    assert [r.name for r in res.netlist.records] == ["GROUND_RETURN", "VCC", "NETA"]
    assert res.json.document["net"][1]["note"] == "ünïcode"
    assert res.json.document["x-tool"] == {"keep": True}
    assert out.endswith(AFTER)


def test_explicit_records_and_document():
    data = sample_board(document=DOC)
    s = EditSession(data)
    out = s.rebuild(records=[NetRecord(9, "ONLY")], document={"net": []})
    res = load(out)
    assert [(r.index, r.name) for r in res.netlist.records] == [(9, "ONLY")]
    assert res.json.document == {"net": []}
    assert out.endswith(AFTER)


def test_failed_rebuild_leaves_image_untouched():
    data = sample_board(document=DOC)
    s = EditSession(data)
    s.records[0].name = "BAD\x00NAME"
    with pytest.raises(RebuildError):
        s.rebuild()
    assert s.image == data
    assert not s.busy


def test_rename_validation():
    s = EditSession(sample_board())
    with pytest.raises(ValueError):
        s.rename_net(0, "")
    with pytest.raises(IndexError):
        s.rename_net(3, "X")
    assert s.rename_net(1, " V CC ").name == " V CC "


@pytest.mark.parametrize("name", ["BAD\x01", "x" * 993, 42])
def test_rename_rejects_unstorable_names_immediately(name):
    s = EditSession(sample_board())
    with pytest.raises(BoardFormatError):
        s.rename_net(0, name)
    assert s.records[0].name == "GND"
    assert s.records[0].encoded_size == 11
    assert not s.dirty


def test_deeply_nested_trailer_loads_as_warning():
    payload = b'{"a":' + b"[" * 100000 + b"]" * 100000 + b"}"
    data = build_board(entries((1, "GND")), tail=MARKER_CR + payload)
    res = load(data)
    assert [(r.index, r.name) for r in res.netlist.records] == [(1, "GND")]
    assert res.json is None
    assert [w.kind for w in res.warnings] == [MALFORMED_JSON]

    s = EditSession(data)
    assert s.trailer is None
    with pytest.raises(BoardFormatError):
        s.set_document_text(payload.decode("ascii"))


def test_rebuild_encodes_trailer_through_region_builder(monkeypatch):
    calls = []
    real = session_mod.json_trailer_region

    def spy(trailer, document=None):
        calls.append(trailer.payload_start)
        return real(trailer, document)

    monkeypatch.setattr(session_mod, "json_trailer_region", spy)
    data = sample_board(document=DOC)
    s = EditSession(data)
    old_start = s.trailer.payload_start
    s.rename_net(0, "GROUND")
    s.rebuild()
    assert calls == [old_start + 3]
    assert s.document == DOC


def test_rebuild_while_busy_is_refused(monkeypatch):
    s = EditSession(sample_board(document=DOC))

    def reentrant(*args, **kwargs):
        return s.rebuild()

    monkeypatch.setattr(session_mod, "build_image", reentrant)
    with pytest.raises(SessionBusyError):
        s.rebuild()
    assert not s.busy


def test_verify_failure_is_reported(monkeypatch):
    data = sample_board(document=DOC)
    s = EditSession(data)
    s.rename_net(0, "CHANGED")
    monkeypatch.setattr(session_mod, "build_image", lambda data, *a: bytes(data))
    with pytest.raises(RebuildError, match="verify failed"):
        s.rebuild()
    assert s.image == data


def test_records_without_net_block():
    data = b"\x00" * 8 + trailer({"a": 1})
    with pytest.raises(RebuildError):
        rebuild(data, records=[NetRecord(1, "X")])
    out = rebuild(data, document={"a": 2})
    assert load(out).json.document == {"a": 2}


def test_document_without_trailer():
    with pytest.raises(RebuildError):
        rebuild(sample_board(), document={"a": 1})


def test_module_rebuild_with_records():
    data = sample_board(document=DOC)
    out = rebuild(data, records=[NetRecord(1, "A"), NetRecord(2, "B")])
    assert [r.name for r in load(out).netlist.records] == ["A", "B"]
    assert load(out).json.document == DOC


def test_set_document_text():
    s = EditSession(sample_board(document=DOC))
    with pytest.raises(BoardFormatError):
        s.set_document_text("{broken")
    with pytest.raises(BoardFormatError):
        s.set_document_text("[1, 2]")
    s.set_document_text('{"net": [{"name": "N"}]}')
    assert s.dirty
    assert load(s.rebuild()).json.document == {"net": [{"name": "N"}]}


def test_set_document_requires_trailer():
    s = EditSession(sample_board())
    with pytest.raises(BoardFormatError):
        s.set_document({"a": 1})


def test_open_discards_edits():
    data = sample_board(document=DOC)
    s = EditSession(data)
    s.rename_net(0, "EDITED")
    res = s.open(data)
    assert [r.name for r in res.netlist.records] == ["GND", "VCC", "NETA"]
    assert [r.name for r in s.records] == ["GND", "VCC", "NETA"]
    assert not s.dirty


def test_reparse_and_result():
    s = EditSession(sample_board(document=DOC))
    s.document["net"].clear()
    res = s.reparse()
    assert res.json.document == DOC
    assert s.result().json.document == DOC


def test_session_add_json_trailer():
    s = EditSession(sample_board())
    assert s.trailer is None
    out = s.add_json_trailer()
    assert s.image == out
    assert s.dirty
    assert s.document["net"][0]["name"] == "NET1"
    with pytest.raises(BoardFormatError):
        s.add_json_trailer()

    s.document["net"][0]["alias"] = "renamed"
    rebuilt = s.rebuild()
    assert load(rebuilt).json.document["net"][0]["alias"] == "renamed"


def test_add_json_trailer_refused_over_malformed_trailer():
    s = EditSession(sample_board() + MARKER_LF + b"{oops")
    assert s.trailer is None
    assert [w.kind for w in s.warnings] == [MALFORMED_JSON]
    with pytest.raises(BoardFormatError):
        s.add_json_trailer()
    assert not s.busy


def test_module_add_json_trailer():
    out = add_json_trailer(sample_board(), {"part": []}, marker=MARKER_LF)
    res = load(out)
    assert res.json.marker == MARKER_LF
    assert res.json.document == {"part": []}
    assert [r.name for r in res.netlist.records] == ["GND", "VCC", "NETA"]


def test_hex_lines_view():
    s = EditSession(sample_board())
    rows = s.hex_lines(0x28, 4)
    assert rows == ["Offset 40: 24 00 00 00"]


def test_package_surface():
    assert io_pcb_board.__version__
    for name in io_pcb_board.__all__:
        assert hasattr(io_pcb_board, name)
