# qemutrace

Tools for post-processing the memory access logs that an instrumented QEMU
writes while running a guest. The pipeline has three stages, each one a
command that reads and writes plain text.

## Installation

    pip install .

## Stage 1: merge the binary logs

    qemutrace-merge --log-dir /path/to/logs > merged.csv

Every file in the directory whose name starts with `log.txt` is read as a
stream of fixed-size binary records (32 bytes, little-endian: two 64-bit
counters, three bytes for cpu, store flag and size shift, five bytes of
padding, a 64-bit address). A trailing partial record is ignored. The records
of all files are merged in order of their logical clock and written to
standard output one per line:

    logical_clock,insn_count,cpu,store,size,0x<address>

A warning goes to standard error if the clocks run backwards.

## Stage 2: detect page copies that RowClone could do

    qemutrace-rowclone --kernel-logfile kernel.log < merged.csv > accesses.csv

Each line of the kernel log that holds a record of the form

    N=<command>,<r|w>,<cpu>,<size>,0x..,0x<kernel address>,0x..,0x<user address>

announces a copy between a kernel page and a user page. Only copies that are
exactly 4096 bytes, whose user address is page-aligned and whose two
addresses share the subarray bits (bits 21 to 27) are kept; up to 200 of them
are matched against the access stream at a time.

The input is read in the format written by stage 1; lines that do not parse
are skipped. Once a copy's loads and stores have each run more than 128 bytes
in step through the pages (or the copy completes), it is written as a single
RowClone record and its remaining accesses are dropped:

    insn_count,1,0,cpu,0x<from>,0x<to>

All other accesses are written as regular records:

    insn_count,0,store,cpu,0x<address>

Counts of matched, pending and rejected copies are reported on standard error.

## Stage 3: filter through a cache and write Ramulator traces

    qemutrace-cache --log-dir traces --cpus 8 < accesses.csv

Each CPU gets a private 512 KiB, 8-way, 64-byte-block LRU cache. Only misses
reach memory; they are written to `traces/cpu_<n>.trace` (the directory must
already exist) in the Ramulator CPU-trace format, where the first number is the
count of instructions since the previous line written for that CPU:

    <bubble> 0x<address>             # load
    <bubble> -1 0x<address>          # store
    <bubble> 0x<from> 0x<to>         # rowclone

A RowClone record is always written and invalidates the destination page in
every CPU's cache; the destination must be page-aligned, otherwise a
`ValueError` is raised. With `--binary-in` (`-b`) the input is read in the
merged format from stage 1 instead, without RowClone records. `--cpus` (`-c`)
defaults to 8. Lines that do not parse are skipped.

## Using the library

    from qemutrace.log_parser import LogParser

    with LogParser("logs/log.txt.0") as parser:
        for record in parser:
            print(record)

The modules can also be used directly:

- `qemutrace.log_parser`: `LogRecord` (`from_bytes`, `to_bytes`, `parse`;
  records compare by logical clock) and `LogParser` (`reset`, `close`).
- `qemutrace.log_merger`: `find_log_files(log_dir)` and `merge_logs(parsers)`,
  which merges any iterables of sorted `LogRecord`s.
- `qemutrace.rowclone`: `add_rowclone_info(mem_lines, kernel_lines)` yields the
  output lines of stage 2; `RowcloneMatcher`, `parse_kernel_line`, `Stats`.
- `qemutrace.memory_access`: `MemRecord`, `RowcloneRecord` and
  `parse_memory_access(line)`.
- `qemutrace.cache`: `Cache`, `CacheSet`, `ramulator_mem_format` and
  `generate_traces(lines, cpus, binary_in)`, which yields `(cpu, trace_line)`.
- `qemutrace.lookahead`: `LookaheadIterator` with `peek_n(n)`.

## Limitations

The package does not produce the logs it reads; the binary access logs and the
kernel copy log must come from an instrumented emulator and kernel. Copy
detection handles single-page copies only.