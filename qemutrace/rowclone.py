"""Detect page copies in a memory-access log and mark them as row-clone operations.

Kernel copy logs announce copies between user and kernel pages. Accesses
that walk such a page in step are folded into one row-clone record; every
other access is passed through as a regular load or store.
"""

from __future__ import annotations

import argparse
import re
import sys
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from qemutrace.log_parser import LogRecord, _parse_hex, _parse_unsigned
from qemutrace.memory_access import MemRecord, RowcloneRecord

PAGE_SIZE = 4096
COPY_WINDOW = 200
# A kernel record that has seen this many newer records matched is not expected to match.
COPY_WINDOW_STALE_THRESHOLD = 20
# Bytes of matching loads and stores needed before a copy is accepted.
COPY_CONFIDENCE_THRESHOLD = 128

_U64_MASK = (1 << 64) - 1

KERNEL_LOG_PATTERN = re.compile(
    r"N=([^,]+),([rw]),(\d+),(\d+),(0x[0-9a-fA-F]+),(0x[0-9a-fA-F]+),"
    r"(0x[0-9a-fA-F]+),(0x[0-9a-fA-F]+)"
)


@dataclass
class KernelRecord:
    """A copy between a user page and a kernel page announced by the kernel log."""

    rec_id: int
    command: str
    cpu: int
    size: int
    operation: str
    kernel_address: int
    user_address: int
    stale: int = 0


@dataclass
class MemCpy:
    """A copy being tracked through the access stream."""

    rec_id: int
    cpu: int
    insn_count: int
    from_address: int
    to_address: int
    size: int
    current_from: int
    current_to: int


@dataclass
class Stats:
    """Counts of kernel copy records by the reason they were kept or dropped."""

    total: int = 0
    not4kb: int = 0
    notaligned: int = 0
    not_same_subarray: int = 0
    rowclone: int = 0

    def accept(self, record: KernelRecord) -> bool:
        """Count the record and return True if it can become a row-clone."""
        self.total += 1
        if record.size != PAGE_SIZE:
            self.not4kb += 1
        elif record.user_address & (PAGE_SIZE - 1):
            self.notaligned += 1
        elif not address_in_same_subarray(record.user_address, record.kernel_address):
            self.not_same_subarray += 1
        else:
            self.rowclone += 1
            return True
        return False


def parse_kernel_line(line: str, rec_id: int) -> Optional[KernelRecord]:
    """Parse a kernel copy log line, or return None if it holds no valid record."""
    match = KERNEL_LOG_PATTERN.search(line)
    if match is None:
        print(f"Failed to parse kernel line: {line.rstrip()}", file=sys.stderr)
        return None
    try:
        return KernelRecord(
            rec_id=rec_id,
            command=match[1],
            cpu=_parse_unsigned(match[3], 32),
            size=_parse_unsigned(match[4], 64),
            operation=match[2],
            kernel_address=_parse_hex(match[6]),
            user_address=_parse_hex(match[8]),
        )
    except ValueError:
        return None


def address_in_same_subarray(a: int, b: int) -> bool:
    """Whether both addresses share the subarray bits 21 to 27."""
    mask = 0x7F
    lsb = 21
    return (a >> lsb) & mask == (b >> lsb) & mask


def page_number(address: int) -> int:
    """The address with its page offset cleared."""
    return address & ~0xFFF & _U64_MASK


def _copy_matches(access: LogRecord, copy: MemCpy) -> bool:
    return (copy.current_from == access.address and access.store == 0) or (
        copy.current_to == access.address and access.store == 1
    )


def _advance(copy: MemCpy, access: LogRecord) -> bool:
    """Move the copy past the access and return whether it is complete."""
    # The access size is a shift: 0 is one byte, 1 is two bytes, and so on.
    step = 1 << access.size
    if access.store == 1:
        copy.current_to += step
    else:
        copy.current_from += step
    copy.insn_count = access.insn_count
    copy.cpu = access.cpu
    return copy.current_to >= copy.to_address + copy.size


def _confident(copy: MemCpy) -> bool:
    return (
        copy.current_to - copy.to_address > COPY_CONFIDENCE_THRESHOLD
        and copy.current_from - copy.from_address > COPY_CONFIDENCE_THRESHOLD
    )


def _rowclone_of(copy: MemCpy) -> RowcloneRecord:
    return RowcloneRecord(
        insn_count=copy.insn_count,
        from_address=copy.from_address,
        to_address=copy.to_address,
        cpu=copy.cpu,
    )


class RowcloneMatcher:
    """Match memory accesses against a sliding window of kernel copy records."""

    def __init__(self, kernel_lines: Iterable[str]) -> None:
        self._kernel_lines = iter(kernel_lines)
        self._next_rec_id = 0
        self.stats = Stats()
        self.window: list[KernelRecord] = []
        self.potential: list[MemCpy] = []
        self.ongoing: list[MemCpy] = []
        self.rowclones = 0
        self._fill_window(report_unparsed=False)

    def _next_kernel_record(self, report_unparsed: bool) -> Optional[KernelRecord]:
        for line in self._kernel_lines:
            record = parse_kernel_line(line, self._next_rec_id)
            if record is None:
                if report_unparsed:
                    print("not parsed?", file=sys.stderr)
                continue
            self._next_rec_id += 1
            if self.stats.accept(record):
                return record
        return None

    def _fill_window(self, report_unparsed: bool = True) -> None:
        while len(self.window) < COPY_WINDOW:
            record = self._next_kernel_record(report_unparsed)
            if record is None:
                return
            self.window.append(record)

    def _retire(self, rec_id: int) -> None:
        """Drop a matched kernel record, age older ones, and refill the window."""
        self.window = [r for r in self.window if r.rec_id != rec_id]
        for record in self.window:
            if record.rec_id < rec_id:
                record.stale += 1
        self.window = [r for r in self.window if r.stale <= COPY_WINDOW_STALE_THRESHOLD]
        self._fill_window()

    def _part_of_ongoing(self, access: LogRecord) -> bool:
        for index, copy in enumerate(self.ongoing):
            if _copy_matches(access, copy):
                if _advance(copy, access):
                    del self.ongoing[index]
                return True
        return False

    def _part_of_potential(self, access: LogRecord) -> tuple[bool, list[RowcloneRecord]]:
        matches = [i for i, copy in enumerate(self.potential) if _copy_matches(access, copy)]
        found: list[RowcloneRecord] = []
        for index in reversed(matches):
            copy = self.potential[index]
            done = _advance(copy, access)
            if not done and not _confident(copy):
                continue
            print("new rowclone", file=sys.stderr)
            self.rowclones += 1
            self._retire(copy.rec_id)
            found.append(_rowclone_of(copy))
            del self.potential[index]
            if not done:
                self.ongoing.append(copy)
        return bool(matches), found

    def _check_start(self, access: LogRecord) -> bool:
        started = False
        for record in self.window:
            if record.operation == "r":
                # kernel to user copy
                is_start = access.store == 0 and record.kernel_address == access.address
            elif record.operation == "w":
                # user to kernel copy
                is_start = access.store == 0 and record.user_address == access.address
            else:
                print("Invalid operation in kernel record!", file=sys.stderr)
                is_start = False
            if not is_start:
                continue
            existing = next((c for c in self.potential if c.rec_id == record.rec_id), None)
            if existing is not None:
                if existing.current_to == existing.to_address:
                    existing.insn_count = access.insn_count
                    started = True
                continue
            to_address = record.kernel_address if record.operation == "w" else record.user_address
            print("new potential copy", file=sys.stderr)
            self.potential.append(
                MemCpy(
                    rec_id=record.rec_id,
                    cpu=access.cpu,
                    insn_count=access.insn_count,
                    from_address=access.address,
                    to_address=to_address,
                    size=record.size,
                    current_from=((access.address + 1) << access.size) & _U64_MASK,
                    current_to=to_address,
                )
            )
            started = True
        return started

    def process(self, mem_lines: Iterable[str]) -> Iterator[str]:
        """Yield output lines for the text access records in ``mem_lines``.

        Lines that are not valid records are skipped.
        """
        for line in mem_lines:
            try:
                access = LogRecord.parse(line)
            except ValueError:
                continue
            if self._part_of_ongoing(access):
                continue
            matched, found = self._part_of_potential(access)
            for rowclone in found:
                yield str(rowclone)
            if matched or self._check_start(access):
                continue
            yield str(
                MemRecord(
                    insn_count=access.insn_count,
                    address=access.address,
                    store=access.store == 1,
                    cpu=access.cpu,
                )
            )
        print(f"Rowclones matched: {self.rowclones}", file=sys.stderr)
        print(f"Potential copies: {len(self.potential)}", file=sys.stderr)
        print(f"Unfinished copies: {len(self.ongoing)}", file=sys.stderr)


def add_rowclone_info(mem_lines: Iterable[str], kernel_lines: Iterable[str]) -> Iterator[str]:
    """Yield the access stream with detected page copies replaced by row-clone records."""
    matcher = RowcloneMatcher(kernel_lines)
    yield from matcher.process(mem_lines)
    print(f"Unmatched Rowclones: {len(matcher.window)}", file=sys.stderr)
    print(matcher.stats, file=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Replace page copies in an access log with row-clone records."
    )
    parser.add_argument("-k", "--kernel-logfile", required=True)
    args = parser.parse_args(argv)

    try:
        kernel_log = open(args.kernel_logfile)
    except OSError:
        print("Error adding rowclone info", file=sys.stderr)
        return 1
    with kernel_log:
        for text in add_rowclone_info(sys.stdin, kernel_log):
            sys.stdout.write(text + "\n")
    sys.stdout.flush()
    print("Finished adding rowclone info", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())