"""Accumulator interface that collected metrics are handed to."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, TextIO

import structlog

from vm_heartbeat.models import MetricRecord

log = structlog.get_logger()


class Accumulator(Protocol):
    """Destination for metric records and non-fatal error reports.

    Implementations must not raise from add_error; reporting an error never
    stops collection.
    """

    def add_fields(
        self,
        measurement: str,
        fields: dict[str, Any],
        tags: dict[str, str],
        timestamp: datetime,
    ) -> None: ...

    def add_error(self, err: Exception) -> None: ...


@dataclass
class MemoryAccumulator:
    """Accumulator that keeps everything in memory."""

    records: list[MetricRecord] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    def add_fields(
        self,
        measurement: str,
        fields: dict[str, Any],
        tags: dict[str, str],
        timestamp: datetime,
    ) -> None:
        self.records.append(
            MetricRecord(name=measurement, tags=dict(tags), fields=dict(fields), timestamp=timestamp)
        )

    def add_error(self, err: Exception) -> None:
        self.errors.append(err)


class JsonLinesAccumulator:
    """Accumulator that writes each record as one JSON line to a stream.

    Errors go to the structured log, not the stream, so the stream stays
    machine-parseable.
    """

    def __init__(self, stream: TextIO):
        self.stream = stream
        self.record_count = 0
        self.error_count = 0

    def add_fields(
        self,
        measurement: str,
        fields: dict[str, Any],
        tags: dict[str, str],
        timestamp: datetime,
    ) -> None:
        record = MetricRecord(name=measurement, tags=tags, fields=fields, timestamp=timestamp)
        self.stream.write(json.dumps(record.to_dict(), default=str) + "\n")
        self.stream.flush()
        self.record_count += 1

    def add_error(self, err: Exception) -> None:
        self.error_count += 1
        log.debug("accumulator_error", error=str(err))
