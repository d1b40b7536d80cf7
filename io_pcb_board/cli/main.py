"""`pcbedit` command-line front end.

Every command loads the file into an `EditSession`; editing commands then
rebuild the image and write it (to `<file>.patched` unless told otherwise).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence

from .. import __version__
from ..core import board_doc
from ..core.errors import BoardFormatError, SessionBusyError
from ..core.header import LAYOUT_KINDS
from ..core.json_trailer import MARKER_CR, MARKER_LF
from ..core.session import EditSession
from .file_io import read_image, save_image
from .settings import EditorSettings, load_settings

log = logging.getLogger("io_pcb_board.cli")


def setup_logging(settings: EditorSettings, *, verbose: int = 0, quiet: bool = False, log_file: str = "") -> None:
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, str(settings.log_level).upper())
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True,
    )


def _open(args: argparse.Namespace, settings: EditorSettings) -> EditSession:
    return EditSession(read_image(args.file), layout=settings.layout)


def _write(args: argparse.Namespace, settings: EditorSettings, data: bytes) -> int:
    out = save_image(args.file, data, settings)
    print(f"saved {out} ({len(data)} bytes)")
    return 0


def _save(args: argparse.Namespace, settings: EditorSettings, session: EditSession) -> int:
    return _write(args, settings, session.rebuild())


def _require_document(session: EditSession) -> Dict[str, Any]:
    doc = session.document
    if doc is None:
        raise BoardFormatError("no JSON trailer in this file; run `pcbedit trailer add` first")
    return doc


def cmd_info(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    print(f"File: {args.file}")
    print(f"Size: {len(session.image)} bytes")
    nl = session.netlist
    if nl is None:
        print("Net block: not found")
    else:
        print(f"Header layout: {nl.layout}")
        print(f"Netlist start offset: {nl.start_offset}")
        print(f"Netlist total size: {nl.total_size} bytes")
        print(f"Nets: {len(nl.records)}")
    tr = session.trailer
    if tr is None:
        print("JSON trailer: absent")
    else:
        summary = board_doc.document_summary(tr.document)
        print(
            f"JSON trailer: marker at {tr.marker_offset}, payload [{tr.payload_start}, {tr.payload_end}), "
            f"{summary['parts']} parts, {summary['nets']} nets"
        )
    for w in session.warnings:
        print(f"Warning: {w}")
    return 0


def cmd_nets(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    if args.json:
        rows = [
            {"index": r.index, "name": r.name, "size": r.encoded_size}
            for r in session.records
        ]
        print(json.dumps(rows, indent=settings.json_indent, ensure_ascii=False))
        return 0
    for pos, r in enumerate(session.records):
        print(f"{pos:5d}  index={r.index:<8d} size={r.encoded_size:<5d} {r.name}")
    return 0


def cmd_rename(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    session.rename_net(int(args.position), args.name)
    return _save(args, settings, session)


def cmd_dump(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    for row in session.hex_lines(int(args.offset), int(args.count)):
        print(row)
    return 0


def cmd_trailer_show(args: argparse.Namespace, settings: EditorSettings) -> int:
    doc = _require_document(_open(args, settings))
    print(json.dumps(doc, indent=settings.json_indent, ensure_ascii=False))
    return 0


def cmd_trailer_set(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    with open(args.json_file, "r", encoding="utf-8") as f:
        session.set_document_text(f.read())
    return _save(args, settings, session)


def cmd_trailer_add(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    marker = MARKER_LF if args.marker == "lf" else MARKER_CR
    # written without a rebuild; the appended trailer stays indented
    return _write(args, settings, session.add_json_trailer(marker=marker))


def cmd_trailer_format(args: argparse.Namespace, settings: EditorSettings) -> int:
    with open(args.json_file, "r", encoding="utf-8") as f:
        text = f.read()
    err = board_doc.validate_json_text(text)
    if err is not None:
        print(f"invalid JSON: {err}", file=sys.stderr)
        return 1
    print(board_doc.format_json_text(text, settings.json_indent))
    return 0


def cmd_parts(args: argparse.Namespace, settings: EditorSettings) -> int:
    doc = _require_document(_open(args, settings))
    items = board_doc.parts(doc)
    for i in board_doc.search_parts(doc, args.search):
        part = items[i]
        pads = part.get("pad") or []
        print(
            f"{i:4d}  {part.get('reference', '')}  value={part.get('value', '')}  "
            f"alias={part.get('alias', '')}  pads={len(pads)}"
        )
        if args.pads:
            for j, pad in enumerate(pads):
                print(
                    f"        pad {j}: {pad.get('name', '')}  alias={pad.get('alias', '')}  "
                    f"diode={board_doc.diode_reading(pad)}"
                )
    return 0


def cmd_json_nets(args: argparse.Namespace, settings: EditorSettings) -> int:
    doc = _require_document(_open(args, settings))
    items = board_doc.nets(doc)
    for i in board_doc.search_nets(doc, args.search):
        print(f"{i:4d}  {items[i].get('name', '')} -> {items[i].get('alias', '')}")
    return 0


def cmd_part_add(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.add_part(_require_document(session), args.reference, args.value, args.alias)
    session.mark_dirty()
    return _save(args, settings, session)


def cmd_part_set(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.update_part(
        _require_document(session),
        int(args.index),
        reference=args.reference,
        value=args.value,
        alias=args.alias,
    )
    session.mark_dirty()
    return _save(args, settings, session)


def cmd_part_del(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.delete_part(_require_document(session), int(args.index))
    session.mark_dirty()
    return _save(args, settings, session)


def cmd_pad_add(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.add_pad(_require_document(session), int(args.part), args.name, args.alias, args.diode)
    session.mark_dirty()
    return _save(args, settings, session)


def cmd_pad_set(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.update_pad(
        _require_document(session),
        int(args.part),
        int(args.pad),
        name=args.name,
        alias=args.alias,
        diode=args.diode,
    )
    session.mark_dirty()
    return _save(args, settings, session)


def cmd_pad_del(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.delete_pad(_require_document(session), int(args.part), int(args.pad))
    session.mark_dirty()
    return _save(args, settings, session)


def cmd_net_add(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.add_net(_require_document(session), args.name, args.alias)
    session.mark_dirty()
    return _save(args, settings, session)


def cmd_net_set(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.update_net(_require_document(session), int(args.index), name=args.name, alias=args.alias)
    session.mark_dirty()
    return _save(args, settings, session)


def cmd_net_del(args: argparse.Namespace, settings: EditorSettings) -> int:
    session = _open(args, settings)
    board_doc.delete_net(_require_document(session), int(args.index))
    session.mark_dirty()
    return _save(args, settings, session)


def _add_write_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--output", "-o", default=None, help="Output file or directory (default: <file>.patched)")
    p.add_argument("--in-place", action="store_true", default=None, help="Overwrite the source (keeps <file>.bak)")
    p.add_argument("--no-backup", action="store_true", help="Disable the .bak copy for in-place saves")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pcbedit",
        description="Inspect and edit the net block and JSON trailer of .pcb board files",
    )
    parser.add_argument("--version", action="version", version=f"pcbedit {__version__}")
    parser.add_argument("--config", default=None, help="Settings file (default: ./pcbedit.toml if present)")
    parser.add_argument("--layout", choices=LAYOUT_KINDS, default=None, help="Header layout")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Increase verbosity (-v, -vv)")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only report errors")
    parser.add_argument("--log-file", default="", help="Also write the log to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("info", help="Summarize the file")
    p.add_argument("file")
    p.set_defaults(func=cmd_info)

    p = sub.add_parser("nets", help="List net records")
    p.add_argument("file")
    p.add_argument("--json", action="store_true", help="Print as JSON")
    p.set_defaults(func=cmd_nets)

    p = sub.add_parser("rename", help="Rename the net at a list position")
    p.add_argument("file")
    p.add_argument("position", type=int)
    p.add_argument("name")
    _add_write_options(p)
    p.set_defaults(func=cmd_rename)

    p = sub.add_parser("dump", help="Hex dump bytes")
    p.add_argument("file")
    p.add_argument("--offset", type=int, default=0)
    p.add_argument("--count", type=int, default=50)
    p.set_defaults(func=cmd_dump)

    p = sub.add_parser("trailer", help="JSON trailer commands")
    tsub = p.add_subparsers(dest="trailer_command", required=True)
    t = tsub.add_parser("show", help="Print the JSON trailer")
    t.add_argument("file")
    t.set_defaults(func=cmd_trailer_show)
    t = tsub.add_parser("set", help="Replace the JSON trailer from a file")
    t.add_argument("file")
    t.add_argument("json_file")
    _add_write_options(t)
    t.set_defaults(func=cmd_trailer_set)
    t = tsub.add_parser("add", help="Append a default JSON trailer")
    t.add_argument("file")
    t.add_argument("--marker", choices=("cr", "lf"), default="cr")
    _add_write_options(t)
    t.set_defaults(func=cmd_trailer_add)
    t = tsub.add_parser("format", help="Validate and pretty-print a JSON file")
    t.add_argument("json_file")
    t.set_defaults(func=cmd_trailer_format)

    p = sub.add_parser("parts", help="List trailer parts")
    p.add_argument("file")
    p.add_argument("--search", default="")
    p.add_argument("--pads", action="store_true", help="Also list pads")
    p.set_defaults(func=cmd_parts)

    p = sub.add_parser("json-nets", help="List trailer nets")
    p.add_argument("file")
    p.add_argument("--search", default="")
    p.set_defaults(func=cmd_json_nets)

    p = sub.add_parser("part-add", help="Add a trailer part")
    p.add_argument("file")
    p.add_argument("--reference", default="")
    p.add_argument("--value", default="")
    p.add_argument("--alias", default="")
    _add_write_options(p)
    p.set_defaults(func=cmd_part_add)

    p = sub.add_parser("part-set", help="Change fields of a trailer part")
    p.add_argument("file")
    p.add_argument("index", type=int)
    p.add_argument("--reference", default=None)
    p.add_argument("--value", default=None)
    p.add_argument("--alias", default=None)
    _add_write_options(p)
    p.set_defaults(func=cmd_part_set)

    p = sub.add_parser("part-del", help="Delete a trailer part")
    p.add_argument("file")
    p.add_argument("index", type=int)
    _add_write_options(p)
    p.set_defaults(func=cmd_part_del)

    p = sub.add_parser("pad-add", help="Add a pad to a trailer part")
    p.add_argument("file")
    p.add_argument("part", type=int)
    p.add_argument("--name", default="")
    p.add_argument("--alias", default="")
    p.add_argument("--diode", default="0")
    _add_write_options(p)
    p.set_defaults(func=cmd_pad_add)

    p = sub.add_parser("pad-set", help="Change fields of a pad")
    p.add_argument("file")
    p.add_argument("part", type=int)
    p.add_argument("pad", type=int)
    p.add_argument("--name", default=None)
    p.add_argument("--alias", default=None)
    p.add_argument("--diode", default=None)
    _add_write_options(p)
    p.set_defaults(func=cmd_pad_set)

    p = sub.add_parser("pad-del", help="Delete a pad from a trailer part")
    p.add_argument("file")
    p.add_argument("part", type=int)
    p.add_argument("pad", type=int)
    _add_write_options(p)
    p.set_defaults(func=cmd_pad_del)

    p = sub.add_parser("net-add", help="Add a trailer net")
    p.add_argument("file")
    p.add_argument("--name", default="")
    p.add_argument("--alias", default="")
    _add_write_options(p)
    p.set_defaults(func=cmd_net_add)

    p = sub.add_parser("net-set", help="Change fields of a trailer net")
    p.add_argument("file")
    p.add_argument("index", type=int)
    p.add_argument("--name", default=None)
    p.add_argument("--alias", default=None)
    _add_write_options(p)
    p.set_defaults(func=cmd_net_set)

    p = sub.add_parser("net-del", help="Delete a trailer net")
    p.add_argument("file")
    p.add_argument("index", type=int)
    _add_write_options(p)
    p.set_defaults(func=cmd_net_del)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.config)
        settings = settings.with_overrides(
            layout=args.layout,
            output_path=getattr(args, "output", None),
            in_place=getattr(args, "in_place", None),
            backup=False if getattr(args, "no_backup", False) else None,
        )
        setup_logging(settings, verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    try:
        return int(args.func(args, settings))
    except (OSError, ValueError, LookupError, SessionBusyError) as e:
        log.debug("command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
