"""Editing helpers for the JSON trailer document.

The document is kept as a plain JSON tree (dicts/lists/scalars). Expected
shape, interpreted loosely:

    {"part": [{"reference", "value"?, "alias", "pad"?: [{"name", "alias", "diode"}]}],
     "net":  [{"name", "alias"}]}

Helpers only touch the keys they are asked to change, so unknown keys on the
document, parts, pads and nets survive a round-trip.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

Document = Dict[str, Any]

_DIODE_KEYS_WITH_UNIT = (
    "diode_reading",
    "diodeReading",
    "voltage",
    "reading",
    "test_voltage",
    "testVoltage",
)


def default_document() -> Document:
    return {
        "part": [
            {
                "reference": "U1",
                "value": "IC",
                "alias": "Chip1",
                "pad": [{"name": "1", "alias": "A1", "diode": "0"}],
            }
        ],
        "net": [{"name": "NET1", "alias": "Signal1"}],
    }


def _list(doc: Document, key: str, *, create: bool = False) -> List[Any]:
    items = doc.get(key)
    if items is None and create:
        items = []
        doc[key] = items
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValueError(f"document key {key!r} is not a list")
    return items


def _item(items: List[Any], index: int, what: str) -> Dict[str, Any]:
    if index < 0 or index >= len(items):
        raise IndexError(f"{what} index out of range: {index}")
    item = items[index]
    if not isinstance(item, dict):
        raise ValueError(f"{what} {index} is not an object")
    return item


def parts(doc: Document) -> List[Any]:
    return _list(doc, "part")


def nets(doc: Document) -> List[Any]:
    return _list(doc, "net")


def document_summary(doc: Document) -> Dict[str, int]:
    return {"parts": len(parts(doc)), "nets": len(nets(doc))}


def add_part(
    doc: Document,
    reference: str = "",
    value: str = "",
    alias: str = "",
) -> Dict[str, Any]:
    items = _list(doc, "part", create=True)
    reference = reference or f"U{len(items) + 1}"
    part = {
        "reference": reference,
        "value": value or "",
        "alias": alias or f"{reference.lower()}_alias",
        "pad": [],
    }
    items.append(part)
    return part


def update_part(
    doc: Document,
    index: int,
    *,
    reference: Optional[str] = None,
    value: Optional[str] = None,
    alias: Optional[str] = None,
) -> Dict[str, Any]:
    part = _item(parts(doc), int(index), "part")
    if reference is not None:
        part["reference"] = reference
    if value is not None:
        part["value"] = value
    if alias is not None:
        part["alias"] = alias
    return part


def delete_part(doc: Document, index: int) -> Dict[str, Any]:
    items = parts(doc)
    _item(items, int(index), "part")
    return items.pop(int(index))


def part_pads(doc: Document, part_index: int, *, create: bool = False) -> List[Any]:
    return _list(_item(parts(doc), int(part_index), "part"), "pad", create=create)


def add_pad(
    doc: Document,
    part_index: int,
    name: str = "",
    alias: str = "",
    diode: str = "0",
) -> Dict[str, Any]:
    pads = part_pads(doc, part_index, create=True)
    pad = {
        "name": name or f"{len(pads) + 1}",
        "alias": alias or "",
        "diode": diode or "0",
    }
    pads.append(pad)
    return pad


def update_pad(
    doc: Document,
    part_index: int,
    pad_index: int,
    *,
    name: Optional[str] = None,
    alias: Optional[str] = None,
    diode: Optional[str] = None,
) -> Dict[str, Any]:
    pad = _item(part_pads(doc, part_index), int(pad_index), "pad")
    if name is not None:
        pad["name"] = name
    if alias is not None:
        pad["alias"] = alias
    if diode is not None:
        pad["diode"] = diode
    return pad


def delete_pad(doc: Document, part_index: int, pad_index: int) -> Dict[str, Any]:
    pads = part_pads(doc, part_index)
    _item(pads, int(pad_index), "pad")
    return pads.pop(int(pad_index))


def add_net(doc: Document, name: str = "", alias: str = "") -> Dict[str, Any]:
    items = _list(doc, "net", create=True)
    name = name or f"NET{len(items) + 1}"
    net = {"name": name, "alias": alias or f"{name.lower()}_alias"}
    items.append(net)
    return net


def update_net(
    doc: Document,
    index: int,
    *,
    name: Optional[str] = None,
    alias: Optional[str] = None,
) -> Dict[str, Any]:
    net = _item(nets(doc), int(index), "net")
    if name is not None:
        net["name"] = name
    if alias is not None:
        net["alias"] = alias
    return net


def delete_net(doc: Document, index: int) -> Dict[str, Any]:
    items = nets(doc)
    _item(items, int(index), "net")
    return items.pop(int(index))


def diode_reading(pad: Dict[str, Any]) -> str:
    if pad.get("diode") is not None:
        return f"{pad['diode']}"
    for key in _DIODE_KEYS_WITH_UNIT:
        if pad.get(key) is not None:
            return f"{pad[key]}V"
    return "No reading"


def _text(v: Any) -> str:
    return "" if v is None else str(v).lower()


def search_parts(doc: Document, term: str) -> List[int]:
    """Indices of parts whose reference/value/alias or any pad name/alias contains `term`."""
    term = str(term or "").strip().lower()
    out: List[int] = []
    for i, part in enumerate(parts(doc)):
        if not isinstance(part, dict):
            continue
        if not term:
            out.append(i)
            continue
        fields = [part.get("reference"), part.get("value"), part.get("alias")]
        for pad in part.get("pad") or []:
            if isinstance(pad, dict):
                fields += [pad.get("name"), pad.get("alias")]
        if any(term in _text(f) for f in fields):
            out.append(i)
    return out


def search_nets(doc: Document, term: str) -> List[int]:
    term = str(term or "").strip().lower()
    out: List[int] = []
    for i, net in enumerate(nets(doc)):
        if not isinstance(net, dict):
            continue
        if not term or term in _text(net.get("name")) or term in _text(net.get("alias")):
            out.append(i)
    return out


def format_json_text(text: str, indent: int = 2) -> str:
    return json.dumps(json.loads(text), indent=int(indent), ensure_ascii=False)


def validate_json_text(text: str) -> Optional[str]:
    """Return `None` when `text` is a JSON object, else a short error message."""
    try:
        obj = json.loads(text)
    except (ValueError, RecursionError) as e:
        return str(e)
    if not isinstance(obj, dict):
        return f"expected a JSON object, got {type(obj).__name__}"
    return None
