import dataclasses

import pytest

from qemutrace.log_parser import LogParser, LogRecord


def _fields(record):
    return dataclasses.astuple(record)


def _sample(clock=7, insn=11, cpu=3, store=1, size=2, address=0xDEADBEEF):
    return LogRecord(clock, insn, cpu, store, size, address)


def test_record_size_matches_layout():
    assert LogRecord.SIZE == 32
    assert len(_sample().to_bytes()) == LogRecord.SIZE


def test_bytes_round_trip():
    record = _sample(address=2**64 - 1)
    again = LogRecord.from_bytes(record.to_bytes())
    assert _fields(again) == _fields(record)


def test_from_bytes_wrong_length():
    with pytest.raises(ValueError):
        LogRecord.from_bytes(b"\x00" * 5)


def test_text_format():
    record = LogRecord(1, 2, 3, 1, 2, 0xDEAD)
    assert str(record) == "1,2,3,1,2,0x000000000000dead"


def test_text_round_trip():
    record = _sample()
    assert _fields(LogRecord.parse(str(record))) == _fields(record)


def test_parse_trims_whitespace():
    record = LogRecord.parse("  4,5,0,0,1,0x10\n")
    assert _fields(record) == (4, 5, 0, 0, 1, 0x10)


def test_parse_wrong_field_count():
    with pytest.raises(ValueError):
        LogRecord.parse("1,2,3,4,5")
    with pytest.raises(ValueError):
        LogRecord.parse("1,2,3,4,5,0x1,7")


@pytest.mark.parametrize(
    "line",
    ["x,2,3,1,2,0x1", "1,-2,3,1,2,0x1", "1,2,256,1,2,0x1", "1,2,3,1,2,0xzz"],
)
def test_parse_invalid_values(line):
    with pytest.raises(ValueError):
        LogRecord.parse(line)


def test_ordering_uses_clock_only():
    a = _sample(clock=5, cpu=1)
    b = _sample(clock=5, cpu=2)
    c = _sample(clock=1)
    assert a == b
    assert c < a
    assert [r.logical_clock for r in sorted([a, c, b])] == [1, 5, 5]


def _write_log(path, records, trailing=b""):
    path.write_bytes(b"".join(r.to_bytes() for r in records) + trailing)


def test_parser_reads_records(tmp_path):
    records = [_sample(clock=n, insn=n * 2) for n in range(4)]
    path = tmp_path / "log.bin"
    _write_log(path, records)
    with LogParser(str(path)) as parser:
        read = list(parser)
    assert [_fields(r) for r in read] == [_fields(r) for r in records]


def test_parser_ignores_partial_record(tmp_path):
    records = [_sample(clock=1), _sample(clock=2)]
    path = tmp_path / "log.bin"
    _write_log(path, records, trailing=b"\x01\x02\x03")
    with LogParser(str(path)) as parser:
        assert [r.logical_clock for r in parser] == [1, 2]


def test_parser_reset(tmp_path):
    records = [_sample(clock=n) for n in range(3)]
    path = tmp_path / "log.bin"
    _write_log(path, records)
    with LogParser(str(path)) as parser:
        first = [r.logical_clock for r in parser]
        parser.reset()
        second = [r.logical_clock for r in parser]
    assert first == second == [0, 1, 2]


def test_parser_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        LogParser(str(tmp_path / "absent"))