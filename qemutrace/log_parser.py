"""Fixed-size binary records of the memory-access log and a reader for them."""

from __future__ import annotations

import functools
import re
import struct
from dataclasses import dataclass
from typing import ClassVar, Iterator

# Two u64 fields, three u8 fields, padding to 8-byte alignment, one u64 field.
_RECORD = struct.Struct("<QQBBB5xQ")

_DECIMAL = re.compile(r"\+?[0-9]+")
_HEX = re.compile(r"\+?[0-9a-fA-F]+")


def _parse_unsigned(text: str, bits: int) -> int:
    """Parse a decimal unsigned integer that must fit in ``bits`` bits."""
    if not _DECIMAL.fullmatch(text):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(text)
    if value >= 1 << bits:
        raise ValueError(f"number too large to fit in {bits} bits: {text!r}")
    return value


def _parse_hex(text: str) -> int:
    """Parse a hexadecimal 64-bit address, with any leading ``0x`` prefixes removed."""
    digits = text
    while digits.startswith("0x"):
        digits = digits[2:]
    if not _HEX.fullmatch(digits):
        raise ValueError(f"invalid hexadecimal address: {text!r}")
    value = int(digits, 16)
    if value >= 1 << 64:
        raise ValueError(f"address too large to fit in 64 bits: {text!r}")
    return value


@functools.total_ordering
@dataclass(eq=False)
class LogRecord:
    """One memory access; records compare and order by logical clock only."""

    logical_clock: int
    insn_count: int
    cpu: int
    store: int
    size: int
    address: int

    SIZE: ClassVar[int] = _RECORD.size

    @classmethod
    def from_bytes(cls, data: bytes) -> LogRecord:
        if len(data) != cls.SIZE:
            raise ValueError(f"record must be {cls.SIZE} bytes, got {len(data)}")
        return cls(*_RECORD.unpack(data))

    def to_bytes(self) -> bytes:
        return _RECORD.pack(
            self.logical_clock,
            self.insn_count,
            self.cpu,
            self.store,
            self.size,
            self.address,
        )

    @classmethod
    def parse(cls, text: str) -> LogRecord:
        parts = text.strip().split(",")
        if len(parts) != 6:
            raise ValueError("record must have exactly 6 fields")
        return cls(
            logical_clock=_parse_unsigned(parts[0], 64),
            insn_count=_parse_unsigned(parts[1], 64),
            cpu=_parse_unsigned(parts[2], 8),
            store=_parse_unsigned(parts[3], 8),
            size=_parse_unsigned(parts[4], 8),
            address=_parse_hex(parts[5]),
        )

    def __str__(self) -> str:
        return (
            f"{self.logical_clock},{self.insn_count},{self.cpu},"
            f"{self.store},{self.size},0x{self.address:016x}"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LogRecord):
            return NotImplemented
        return self.logical_clock == other.logical_clock

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LogRecord):
            return NotImplemented
        return self.logical_clock < other.logical_clock

    def __hash__(self) -> int:
        return hash(self.logical_clock)


class LogParser:
    """Iterate over the binary records of a log file.

    A trailing partial record is treated as the end of the file.
    """

    def __init__(self, filename: str) -> None:
        self._file = open(filename, "rb")

    def __iter__(self) -> Iterator[LogRecord]:
        return self

    def __next__(self) -> LogRecord:
        data = self._file.read(LogRecord.SIZE)
        if len(data) < LogRecord.SIZE:
            raise StopIteration
        return LogRecord.from_bytes(data)

    def reset(self) -> None:
        """Start reading again from the first record."""
        self._file.seek(0)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> LogParser:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()