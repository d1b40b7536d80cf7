"""Reading and writing board files (the only I/O in the editor)."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from .settings import EditorSettings

log = logging.getLogger(__name__)


def read_image(path: str) -> bytes:
    p = Path(path)
    if not p.exists() or not p.is_file():
        raise FileNotFoundError(str(path))
    data = p.read_bytes()
    log.info("read %s (%d bytes)", p, len(data))
    return data


def resolve_output_path(src_path: str, out_path: str = "") -> str:
    out_path = str(out_path or "").strip()
    if not out_path:
        return str(src_path) + ".patched"
    if out_path.endswith(("/", "\\")) or os.path.isdir(out_path):
        base = os.path.basename(str(src_path).rstrip("\\/"))
        return os.path.join(out_path.rstrip("\\/"), base + ".patched")
    return out_path


def write_image(dst_path: str, data: bytes, *, attempts: int = 15) -> None:
    """Write via a sibling temp file and replace `dst_path` (retrying while locked)."""
    out_path = Path(dst_path)
    tmp_path = out_path.with_name(out_path.name + f".tmp.{int(time.time() * 1000)}")
    tmp_path.parent.mkdir(parents=True, exist_ok=True)
    with open(tmp_path, "wb") as w:
        w.write(data)

    last_err: Exception | None = None
    for attempt in range(int(attempts)):
        try:
            tmp_path.replace(out_path)
            last_err = None
            break
        except OSError as e:
            last_err = e
            log.debug("replace %s failed (attempt %d): %s", out_path, attempt + 1, e)
            time.sleep(0.05 * (attempt + 1))

    if last_err is not None:
        if tmp_path.exists():
            tmp_path.unlink()
        raise PermissionError(
            f"Save failed: {last_err}\n"
            f"Could not replace:\n  {out_path}\nwith:\n  {tmp_path}\n"
            "Close any program holding the file open and try again."
        )
    log.info("wrote %s (%d bytes)", out_path, len(data))


def save_image(src_path: str, data: bytes, settings: EditorSettings) -> str:
    """Write `data` for `src_path` according to `settings`; return the written path."""
    src_path = str(src_path)
    if settings.in_place:
        if not settings.backup:
            raise ValueError("In-place save requires backup enabled")
        bak_path = src_path + ".bak"
        if os.path.exists(bak_path):
            raise ValueError(f"Backup already exists: {bak_path}")
        os.replace(src_path, bak_path)
        log.info("backed up %s -> %s", src_path, bak_path)
        write_image(src_path, data)
        return src_path

    out_path = resolve_output_path(src_path, settings.output_path)
    if os.path.abspath(out_path) == os.path.abspath(src_path):
        raise ValueError(
            "Output path matches source; enable in-place (with backup) or choose a different output file"
        )
    write_image(out_path, data)
    return out_path
