"""Editor settings loaded from `pcbedit.toml` (table `[pcbedit]`)."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..core.header import LAYOUT_AUTO, LAYOUT_KINDS

DEFAULT_CONFIG_NAME = "pcbedit.toml"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class EditorSettings:
    layout: str = LAYOUT_AUTO
    in_place: bool = False
    backup: bool = True
    output_path: str = ""
    json_indent: int = 2
    log_level: str = "WARNING"

    def with_overrides(self, **kwargs: Any) -> "EditorSettings":
        """Copy with every non-`None` keyword applied."""
        return _validated(replace(self, **{k: v for k, v in kwargs.items() if v is not None}))


def _validated(s: EditorSettings) -> EditorSettings:
    if s.layout not in LAYOUT_KINDS:
        raise ValueError(f"unknown layout {s.layout!r} (expected one of {', '.join(LAYOUT_KINDS)})")
    if int(s.json_indent) < 0:
        raise ValueError("json_indent must be >= 0")
    if str(s.log_level).upper() not in _LOG_LEVELS:
        raise ValueError(f"unknown log_level {s.log_level!r}")
    return s


def settings_from_mapping(raw: Mapping[str, Any]) -> EditorSettings:
    table = raw.get("pcbedit", {})
    if not isinstance(table, dict):
        raise ValueError("[pcbedit] must be a table")
    known = {f.name: f for f in fields(EditorSettings)}
    unknown = sorted(set(table) - set(known))
    if unknown:
        raise ValueError(f"unknown settings: {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in table.items():
        want = type(getattr(EditorSettings(), key))
        if want is bool and not isinstance(value, bool):
            raise ValueError(f"setting {key!r} must be true or false")
        if want is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValueError(f"setting {key!r} must be an integer")
        if want is str and not isinstance(value, str):
            raise ValueError(f"setting {key!r} must be a string")
        values[key] = value
    return _validated(EditorSettings(**values))


def load_settings(path: Optional[str] = None, *, cwd: Optional[Path] = None) -> EditorSettings:
    """Read `path`, else `./pcbedit.toml` when present, else defaults."""
    if path:
        cfg = Path(path)
        if not cfg.is_file():
            raise FileNotFoundError(str(cfg))
    else:
        cfg = (cwd or Path.cwd()) / DEFAULT_CONFIG_NAME
        if not cfg.is_file():
            return EditorSettings()
    with open(cfg, "rb") as f:
        raw = tomllib.load(f)
    return settings_from_mapping(raw)
