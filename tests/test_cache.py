import io

import pytest

from qemutrace.cache import (
    Cache,
    CacheSet,
    generate_traces,
    main,
    parse_binary_record,
    ramulator_mem_format,
)
from qemutrace.memory_access import MemRecord


def test_set_hit_after_miss():
    cache_set = CacheSet(2)
    assert cache_set.access(1) is False
    assert cache_set.access(1) is True


def test_set_evicts_least_recently_used():
    cache_set = CacheSet(2)
    cache_set.access(1)
    cache_set.access(2)
    cache_set.access(1)
    assert cache_set.access(3) is False
    assert cache_set.access(1) is True
    assert cache_set.access(2) is False


def test_set_invalidate():
    cache_set = CacheSet(4)
    cache_set.access(5)
    cache_set.invalidate(5)
    assert 5 not in cache_set.lines
    assert cache_set.access(5) is False


def test_cache_block_granularity():
    cache = Cache(512 * 1024, 64, 8)
    assert cache.access(0) is False
    assert cache.access(63) is True
    assert cache.access(64) is False


def test_cache_invalidate_page():
    cache = Cache(512 * 1024, 64, 8)
    cache.access(4096)
    cache.access(4096 + 4095)
    cache.access(8192)
    cache.invalidate_page(4096)
    assert cache.access(4096) is False
    assert cache.access(4096 + 4095) is False
    assert cache.access(8192) is True


def test_cache_invalidate_requires_alignment():
    cache = Cache(512 * 1024, 64, 8)
    with pytest.raises(ValueError):
        cache.invalidate_page(100)


def test_cache_needs_a_set():
    with pytest.raises(ValueError):
        Cache(64, 64, 8)


def test_ramulator_format_store_and_load():
    assert ramulator_mem_format(MemRecord(10, 0x40, True, 0), 4) == "6 -1 0x0000000000000040"
    load = ramulator_mem_format(MemRecord(10, 0x40, False, 0), 4)
    assert load.split() == ramulator_mem_format(MemRecord(10, 0x40, True, 0), 4).split()[::2]


def test_parse_binary_record():
    assert parse_binary_record("1,2,3,1,0,0x10") == MemRecord(2, 0x10, True, 3)


def test_traces_skip_hits():
    lines = ["100,0,0,0,0x0", "105,0,0,0,0x20", "110,0,0,0,0x1000"]
    out = list(generate_traces(lines, 1, False))
    assert [cpu for cpu, _ in out] == [0, 0]
    assert [int(text.split()[1], 16) for _, text in out] == [0x0, 0x1000]
    assert [text.split()[0] for _, text in out] == ["0", "10"]


def test_traces_rowclone_invalidates_all_caches():
    lines = [
        "100,0,0,0,0x3000",
        "120,1,0,1,0x2000,0x3000",
        "130,0,0,0,0x3000",
    ]
    out = list(generate_traces(lines, 2, False))
    cpu0 = [text for cpu, text in out if cpu == 0]
    cpu1 = [text for cpu, text in out if cpu == 1]
    assert len(cpu0) == 2
    assert len(cpu1) == 1
    fields = cpu1[0].split()
    assert [int(f, 16) for f in fields[1:]] == [0x2000, 0x3000]


def test_traces_binary_input():
    lines = ["1,100,0,1,3,0x80", "2,107,0,0,3,0x80"]
    out = list(generate_traces(lines, 1, True))
    assert len(out) == 1
    assert out[0][1].split()[1] == "-1"


def test_traces_skip_unparsable_lines():
    assert list(generate_traces(["garbage", "1,2"], 1, False)) == []


def test_main_writes_trace_files(tmp_path, monkeypatch):
    stdin = io.StringIO("100,0,0,0,0x0\n100,0,0,1,0x40\n105,0,0,0,0x0\n")
    monkeypatch.setattr("sys.stdin", stdin)
    assert main(["-c", "2", "-l", str(tmp_path)]) == 0
    traces = sorted(p.name for p in tmp_path.iterdir())
    assert traces == ["cpu_0.trace", "cpu_1.trace"]
    assert len((tmp_path / "cpu_0.trace").read_text().splitlines()) == 1
    assert len((tmp_path / "cpu_1.trace").read_text().splitlines()) == 1