"""Shared data structures for board image decoding and patching.

Decoded structures own copies of their strings and JSON values; nothing here
aliases the source buffer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

NET_ENTRY_HEADER = 8


def net_entry_size(name: str) -> int:
    return NET_ENTRY_HEADER + len(name.encode("utf-8"))


@dataclass
class NetRecord:
    index: int
    name: str
    encoded_size: int = 0

    def __post_init__(self) -> None:
        if not self.encoded_size:
            self.encoded_size = net_entry_size(self.name)

    def refresh_size(self) -> int:
        self.encoded_size = net_entry_size(self.name)
        return self.encoded_size


@dataclass
class NetlistBlock:
    start_offset: int
    total_size: int
    records: List[NetRecord] = field(default_factory=list)
    layout: str = ""

    @property
    def entry_start(self) -> int:
        return int(self.start_offset) + 4

    @property
    def original_end(self) -> int:
        """End of the stored block: size field plus `total_size` bytes of entries."""
        return int(self.start_offset) + 4 + int(self.total_size)


@dataclass
class JsonTrailer:
    marker_offset: int
    payload_start: int
    payload_end: int
    document: Dict[str, Any]
    marker: bytes = b""

    @property
    def payload_size(self) -> int:
        return int(self.payload_end) - int(self.payload_start)


@dataclass(frozen=True)
class HeaderLayout:
    """One resolved header convention.

    kind:
    - `relative-0x20`: u32 at 0x28 is relative to 0x20
    - `skip-32`: u32 at 40 is an intermediate offset; the size field is 32 bytes on
    """

    kind: str
    start_offset: int


@dataclass(frozen=True)
class Region:
    original_start: int
    original_end: int
    new_bytes: bytes

    @property
    def delta(self) -> int:
        return len(self.new_bytes) - (int(self.original_end) - int(self.original_start))


@dataclass(frozen=True)
class LoadWarning:
    kind: str
    message: str
    offset: Optional[int] = None

    def __str__(self) -> str:
        if self.offset is None:
            return f"[{self.kind}] {self.message}"
        return f"[{self.kind}] {self.message} (offset {self.offset})"


@dataclass
class LoadResult:
    netlist: Optional[NetlistBlock]
    json: Optional[JsonTrailer]
    warnings: List[LoadWarning] = field(default_factory=list)

    @property
    def errors(self) -> List[LoadWarning]:
        return list(self.warnings)
