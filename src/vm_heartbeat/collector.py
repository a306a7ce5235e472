"""Collection cycle: discover, filter, fetch stats, emit metric records."""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime

import httpx
import structlog

from vm_heartbeat import logging as console
from vm_heartbeat.client import discover, fetch_stats
from vm_heartbeat.config import Config
from vm_heartbeat.errors import HeartbeatError
from vm_heartbeat.filters import filter_pids
from vm_heartbeat.models import CollectionResult, MetricRecord, ProcessDescriptor
from vm_heartbeat.sink import Accumulator

log = structlog.get_logger()


@dataclass
class CycleReport:
    """Summary of one collection cycle."""

    started_at: datetime
    elapsed_ms: int = 0
    discovered: list[ProcessDescriptor] = field(default_factory=list)
    selected: list[int] = field(default_factory=list)
    records: list[MetricRecord] = field(default_factory=list)
    errors: list[HeartbeatError] = field(default_factory=list)
    fatal: HeartbeatError | None = None  # Config or discovery failure
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        """True unless the cycle ended on a config or discovery failure."""
        return self.fatal is None


class HeartbeatCollector:
    """Runs collection cycles against one JVM agent.

    The HTTP client is owned by the caller, so tests can hand in a client
    built on httpx.MockTransport.
    """

    def __init__(self, config: Config, http: httpx.AsyncClient):
        self.config = config
        self.http = http

    async def collect(
        self, acc: Accumulator, cancel: asyncio.Event | None = None
    ) -> list[MetricRecord]:
        """Run one cycle and return the records handed to acc.

        Never raises for configuration, discovery or per-process failures;
        those are reported through acc.add_error.
        """
        report = await self.run_cycle(acc, cancel=cancel)
        return report.records

    async def run_cycle(
        self, acc: Accumulator, cancel: asyncio.Event | None = None
    ) -> CycleReport:
        """Run one cycle and return the full report.

        Steps:
        1. Validate endpoints (failure ends the cycle)
        2. Discover processes (failure ends the cycle)
        3. Narrow ids by pid_filters
        4. Fetch stats per id, reporting each failure
        5. Emit one record per successful id
        """
        start = time.monotonic()
        report = CycleReport(started_at=datetime.now())
        endpoints = self.config.endpoints

        config_error = self.config.validate_endpoints()
        if config_error is not None:
            log.error("config_invalid", error=str(config_error))
            console.config_invalid(str(config_error))
            acc.add_error(config_error)
            report.fatal = config_error
            return self._finish(report, start)

        try:
            report.discovered = await discover(self.http, endpoints.all_pids_url)
        except HeartbeatError as e:
            log.error("discovery_failed", url=endpoints.all_pids_url, error=str(e))
            console.discovery_failed(endpoints.all_pids_url, str(e))
            acc.add_error(e)
            report.fatal = e
            return self._finish(report, start)

        report.selected = sorted(filter_pids(report.discovered, endpoints.pid_filters))
        log.info(
            "pids_selected",
            discovered=len(report.discovered),
            selected=report.selected,
            filters=endpoints.pid_filters,
        )
        if not report.selected:
            console.no_matching_processes(len(report.discovered), endpoints.pid_filters)
            return self._finish(report, start)

        result = await fetch_stats(
            self.http,
            endpoints.by_pid_url,
            report.selected,
            max_concurrency=self.config.http.max_concurrency,
            cancel=cancel,
        )
        log.info(
            "stats_collected",
            succeeded=sorted(result.stats),
            failed=result.failed_pids,
            cancelled=result.cancelled,
        )
        self._report_errors(result, acc)
        report.errors = list(result.errors)
        report.cancelled = result.cancelled
        if result.cancelled:
            console.cycle_cancelled()

        for pid in sorted(result.stats):
            record = MetricRecord.from_stats(pid, result.stats[pid])
            acc.add_fields(record.name, record.fields, record.tags, record.timestamp)
            report.records.append(record)

        report = self._finish(report, start)
        console.cycle_complete(len(report.records), len(report.errors), report.elapsed_ms)
        return report

    def _report_errors(self, result: CollectionResult, acc: Accumulator) -> None:
        """Log and report every per-process failure."""
        for err in result.errors:
            log.warning(
                "stats_error", pid=err.pid, url=err.url, kind=err.kind, error=str(err)
            )
            console.stats_error(err.pid, str(err))
            acc.add_error(err)

    def _finish(self, report: CycleReport, start: float) -> CycleReport:
        report.elapsed_ms = int((time.monotonic() - start) * 1000)
        log.info(
            "cycle_complete",
            emitted=len(report.records),
            errors=len(report.errors),
            fatal=str(report.fatal) if report.fatal else None,
            cancelled=report.cancelled,
            elapsed_ms=report.elapsed_ms,
        )
        return report
