"""Merge per-CPU binary logs into one text stream ordered by logical clock."""

from __future__ import annotations

import argparse
import heapq
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Iterable, Iterator, Optional

from qemutrace.log_parser import LogParser, LogRecord


def find_log_files(log_dir: str) -> list[str]:
    """Return the paths in ``log_dir`` whose names start with ``log.txt``."""
    return sorted(
        str(path) for path in Path(log_dir).iterdir() if path.name.startswith("log.txt")
    )


def merge_logs(parsers: Iterable[Iterable[LogRecord]]) -> Iterator[LogRecord]:
    """Yield the records of all sources, smallest logical clock first.

    Each source is assumed sorted; a source that fails to read is treated as ended.
    """
    heap: list[tuple[int, int, LogRecord, Iterator[LogRecord]]] = []

    def push(index: int, source: Iterator[LogRecord]) -> None:
        try:
            record = next(source)
        except (StopIteration, OSError):
            return
        heapq.heappush(heap, (record.logical_clock, index, record, source))

    for index, parser in enumerate(parsers):
        push(index, iter(parser))
    while heap:
        _, index, record, source = heapq.heappop(heap)
        yield record
        push(index, source)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Merge binary access logs into text ordered by logical clock."
    )
    parser.add_argument("-l", "--log-dir", required=True)
    args = parser.parse_args(argv)

    try:
        paths = find_log_files(args.log_dir)
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    with ExitStack() as stack:
        parsers = []
        for path in paths:
            try:
                parsers.append(stack.enter_context(LogParser(path)))
            except OSError:
                continue
        prev_clock = 0
        for record in merge_logs(parsers):
            if prev_clock > record.logical_clock:
                print("Warning: instruction count out of order!", file=sys.stderr)
            prev_clock = record.logical_clock
            sys.stdout.write(f"{record}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())