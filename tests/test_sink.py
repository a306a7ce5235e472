"""Tests for accumulators."""

import io
import json
from datetime import datetime

from conftest import make_stats_payload

from vm_heartbeat.errors import DecodeError
from vm_heartbeat.models import MetricRecord, ProcessStatistics
from vm_heartbeat.sink import JsonLinesAccumulator, MemoryAccumulator

TS = datetime(2026, 10, 19, 9, 30, 0)


def _record(pid: int) -> MetricRecord:
    stats = ProcessStatistics.from_dict(make_stats_payload(name=f"proc-{pid}"))
    return MetricRecord.from_stats(pid, stats, timestamp=TS)


def test_memory_accumulator_copies_tags_and_fields() -> None:
    acc = MemoryAccumulator()
    record = _record(7)

    acc.add_fields(record.name, record.fields, record.tags, record.timestamp)
    record.tags["pid"] = "changed"

    assert acc.records[0].tags == {"pid": "7"}
    assert acc.records[0].fields["name"] == "proc-7"


def test_memory_accumulator_keeps_errors() -> None:
    acc = MemoryAccumulator()
    err = DecodeError("bad body", pid=1)

    acc.add_error(err)

    assert acc.records == []
    assert acc.errors == [err]


def test_json_lines_accumulator_writes_one_line_per_record() -> None:
    stream = io.StringIO()
    acc = JsonLinesAccumulator(stream)

    for pid in (1, 2):
        record = _record(pid)
        acc.add_fields(record.name, record.fields, record.tags, record.timestamp)

    lines = stream.getvalue().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["name"] == "sysheartbeat"
    assert first["tags"] == {"pid": "1"}
    assert first["fields"]["memory_genused"] == [512, 64, 2048]
    assert first["timestamp"] == "2026-10-19T09:30:00"
    assert acc.record_count == 2


def test_json_lines_accumulator_keeps_errors_off_the_stream(log_output) -> None:
    stream = io.StringIO()
    acc = JsonLinesAccumulator(stream)

    acc.add_error(DecodeError("bad body", pid=3))

    assert stream.getvalue() == ""
    assert acc.error_count == 1
    assert log_output[0]["event"] == "accumulator_error"
    assert "pid=3" in log_output[0]["error"]
