"""Text records of regular memory accesses and row-clone copies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from qemutrace.log_parser import _parse_hex, _parse_unsigned


@dataclass
class MemRecord:
    """A regular load or store."""

    insn_count: int
    address: int
    store: bool
    cpu: int

    def __str__(self) -> str:
        kind = 1 if self.store else 0
        return f"{self.insn_count},0,{kind},{self.cpu},0x{self.address:016x}"


@dataclass
class RowcloneRecord:
    """A page copy that can be carried out in memory."""

    insn_count: int
    from_address: int
    to_address: int
    cpu: int

    def __str__(self) -> str:
        return (
            f"{self.insn_count},1,0,{self.cpu},"
            f"0x{self.from_address:016x},0x{self.to_address:016x}"
        )


MemoryAccess = Union[MemRecord, RowcloneRecord]


def parse_memory_access(line: str) -> MemoryAccess:
    """Parse a line written by ``str`` of either record kind."""
    parts = line.strip().split(",")
    if len(parts) < 5:
        raise ValueError("record must have at least five fields")
    insn_count = _parse_unsigned(parts[0], 64)
    if parts[1] == "1":
        if len(parts) < 6:
            raise ValueError("row-clone record must have six fields")
        cpu = _parse_unsigned(parts[3], 64)
        return RowcloneRecord(
            insn_count=insn_count,
            from_address=_parse_hex(parts[4]),
            to_address=_parse_hex(parts[5]),
            cpu=cpu,
        )
    address = _parse_hex(parts[4])
    return MemRecord(
        insn_count=insn_count,
        address=address,
        store=parts[2] == "1",
        cpu=_parse_unsigned(parts[3], 64),
    )