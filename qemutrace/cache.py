"""Per-CPU LRU cache filter that turns access logs into memory traces."""

from __future__ import annotations

import argparse
import sys
from contextlib import ExitStack
from typing import Iterable, Iterator, Optional

from qemutrace.log_parser import LogRecord
from qemutrace.memory_access import MemRecord, RowcloneRecord, parse_memory_access

PAGE_SIZE = 4096


class CacheSet:
    """One associative set with least-recently-used replacement."""

    def __init__(self, associativity: int) -> None:
        self.lines: list[Optional[int]] = [None] * associativity
        self.lru_order: list[int] = []

    def _find(self, tag: int) -> Optional[int]:
        try:
            return self.lines.index(tag)
        except ValueError:
            return None

    def access(self, tag: int) -> bool:
        """Return True on a hit; on a miss, install the tag."""
        pos = self._find(tag)
        if pos is not None:
            self.lru_order.remove(pos)
            self.lru_order.append(pos)
            return True
        if None in self.lines:
            free = self.lines.index(None)
            self.lines[free] = tag
            self.lru_order.append(free)
        else:
            victim = self.lru_order.pop(0)
            self.lines[victim] = tag
            self.lru_order.append(victim)
        return False

    def invalidate(self, tag: int) -> None:
        """Drop the tag from the set if it is present."""
        pos = self._find(tag)
        if pos is not None:
            self.lines[pos] = None
            self.lru_order.remove(pos)


class Cache:
    """A set-associative cache addressed by byte address."""

    def __init__(self, size: int, block_size: int, associativity: int) -> None:
        num_sets = (size // block_size) // associativity
        if num_sets == 0:
            raise ValueError("cache must have at least one set")
        self.block_size = block_size
        self.sets = [CacheSet(associativity) for _ in range(num_sets)]

    def _set_for(self, block: int) -> CacheSet:
        return self.sets[block % len(self.sets)]

    def access(self, address: int) -> bool:
        """Return True on a hit, False on a miss."""
        block = address // self.block_size
        return self._set_for(block).access(block)

    def invalidate_page(self, address: int) -> None:
        """Invalidate every block of the page starting at ``address``."""
        if address % PAGE_SIZE != 0:
            raise ValueError(f"address 0x{address:x} is not page aligned")
        start = address // self.block_size
        end = (address + PAGE_SIZE - 1) // self.block_size
        for block in range(start, end + 1):
            self._set_for(block).invalidate(block)


def parse_binary_record(line: str) -> MemRecord:
    """Parse a merged log line into a regular access."""
    record = LogRecord.parse(line)
    return MemRecord(
        insn_count=record.insn_count,
        address=record.address,
        store=record.store == 1,
        cpu=record.cpu,
    )


def ramulator_mem_format(record: MemRecord, prev_insn_count: int) -> str:
    bubble = record.insn_count - prev_insn_count
    if record.store:
        return f"{bubble} -1 0x{record.address:016x}"
    return f"{bubble} 0x{record.address:016x}"


def generate_traces(
    lines: Iterable[str], cpus: int, binary_in: bool
) -> Iterator[tuple[int, str]]:
    """Yield ``(cpu, trace_line)`` for every access that misses the CPU's cache.

    Row-clone copies invalidate the destination page in every cache and are
    always emitted. Lines that cannot be parsed are skipped.
    """
    parse = parse_binary_record if binary_in else parse_memory_access
    # 512 KiB, 64-byte blocks, 8-way: an inclusive L2 is enough to filter
    # the accesses that reach memory.
    caches = [Cache(512 * 1024, 64, 8) for _ in range(cpus)]
    first = [True] * cpus
    prev_insn_count = [0] * cpus

    for line in lines:
        try:
            record = parse(line)
        except ValueError:
            continue
        cpu = record.cpu
        if first[cpu]:
            prev_insn_count[cpu] = record.insn_count
            first[cpu] = False
        if isinstance(record, RowcloneRecord):
            for cache in caches:
                cache.invalidate_page(record.to_address)
            yield cpu, (
                f"{record.insn_count - prev_insn_count[cpu]} "
                f"0x{record.from_address:016x} 0x{record.to_address:016x}"
            )
            prev_insn_count[cpu] = record.insn_count
        elif not caches[cpu].access(record.address):
            yield cpu, ramulator_mem_format(record, prev_insn_count[cpu])
            prev_insn_count[cpu] = record.insn_count


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Filter memory accesses through per-CPU caches into trace files."
    )
    parser.add_argument("-b", "--binary-in", action="store_true", default=False)
    parser.add_argument("-c", "--cpus", type=int, default=8)
    parser.add_argument("-l", "--log-dir", required=True)
    args = parser.parse_args(argv)

    with ExitStack() as stack:
        writers = [
            stack.enter_context(open(f"{args.log_dir}/cpu_{cpu}.trace", "w"))
            for cpu in range(args.cpus)
        ]
        for cpu, text in generate_traces(sys.stdin, args.cpus, args.binary_in):
            writers[cpu].write(text + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())