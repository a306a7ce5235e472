"""Periodic collection loop for vm-heartbeat."""

import asyncio
import signal
import sys
from dataclasses import dataclass
from datetime import datetime

import httpx
import structlog

from vm_heartbeat import logging as console
from vm_heartbeat.client import make_http_client
from vm_heartbeat.collector import CycleReport, HeartbeatCollector
from vm_heartbeat.config import Config
from vm_heartbeat.sink import Accumulator, JsonLinesAccumulator

log = structlog.get_logger()


@dataclass
class DaemonState:
    """Runtime state of the collection loop."""

    running: bool = False
    cycle_count: int = 0
    record_count: int = 0
    error_count: int = 0
    last_cycle_time: datetime | None = None

    def update_cycle(self, report: CycleReport) -> None:
        """Update state after a cycle."""
        self.cycle_count += 1
        self.record_count += len(report.records)
        self.error_count += len(report.errors) + (0 if report.ok else 1)
        self.last_cycle_time = report.started_at


class Daemon:
    """Runs a collection cycle every system.interval seconds until stopped."""

    def __init__(
        self,
        config: Config,
        acc: Accumulator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.state = DaemonState()
        self.acc: Accumulator = acc if acc is not None else JsonLinesAccumulator(sys.stdout)
        self._transport = transport
        self._shutdown_event = asyncio.Event()

    def request_stop(self) -> None:
        """Ask the loop to stop; an in-flight cycle abandons pending fetches."""
        self._shutdown_event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        log.info("signal_received", signal=sig.name)
        console.signal_received(sig.name)
        self.request_stop()

    async def start(self, install_signal_handlers: bool = True) -> None:
        """Start collecting and return when stopped."""
        ep = self.config.endpoints
        log.info(
            "collector_config",
            all_pids_url=ep.all_pids_url,
            by_pid_url=ep.by_pid_url,
            pid_filters=ep.pid_filters,
            interval=self.config.system.interval,
            timeout=self.config.http.timeout,
            max_concurrency=self.config.http.max_concurrency,
        )
        console.config_summary(ep.all_pids_url, ep.by_pid_url, ep.pid_filters)

        if install_signal_handlers:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))

        self.state.running = True
        log.info("collector_started")
        console.collector_started(self.config.system.interval)

        async with make_http_client(self.config.http, transport=self._transport) as http:
            collector = HeartbeatCollector(self.config, http)
            await self._main_loop(collector)

    async def stop(self) -> None:
        """Stop the loop."""
        log.info("collector_stopping")
        console.collector_stopping()
        self.request_stop()
        self.state.running = False
        log.info("collector_stopped", cycles=self.state.cycle_count)
        console.collector_stopped()

    async def _main_loop(self, collector: HeartbeatCollector) -> None:
        """Run cycles at the configured interval until shutdown is requested."""
        interval = self.config.system.interval

        while not self._shutdown_event.is_set():
            try:
                iteration_start = asyncio.get_running_loop().time()

                report = await collector.run_cycle(self.acc, cancel=self._shutdown_event)
                self.state.update_cycle(report)

                if self._shutdown_event.is_set():
                    break

                # Sleep for remaining interval (keeps a steady cycle rate)
                elapsed = asyncio.get_running_loop().time() - iteration_start
                sleep_time = interval - elapsed
                if sleep_time > 0:
                    try:
                        await asyncio.wait_for(self._shutdown_event.wait(), timeout=sleep_time)
                        break  # Shutdown requested during sleep
                    except asyncio.TimeoutError:
                        pass

            except asyncio.CancelledError:
                log.info("main_loop_cancelled")
                break
            except Exception as e:
                log.error("cycle_failed", error=str(e))
                console.cycle_failed(str(e))
                # Wait briefly before the next cycle, exit immediately on shutdown
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=1.0)
                    break
                except asyncio.TimeoutError:
                    pass


async def run_daemon(config: Config | None = None, acc: Accumulator | None = None) -> None:
    """Run the collection loop until SIGINT/SIGTERM.

    Args:
        config: Optional config, loads from file if not provided
        acc: Optional accumulator, defaults to JSON lines on stdout
    """
    if config is None:
        config = Config.load()

    console.configure(config)

    daemon = Daemon(config, acc=acc)
    try:
        await daemon.start()
    except Exception as e:
        log.exception("collector_crashed", error=str(e))
        raise
    finally:
        await daemon.stop()
