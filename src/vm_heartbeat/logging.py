"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (cycle_complete, discovery_failed, etc.)
5. Structlog configuration (configure)

Console output uses Rich markup for colors. JSON file output via structlog
remains separate (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from vm_heartbeat.config import Config

# Rich console for colorful human-readable output (stderr keeps stdout for records)
_console = Console(highlight=False, stderr=True)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    HEARTBEAT = "[magenta]♡[/]"
    SIGNAL = "⚡"
    DISCONNECTED = "[red]⬤[/]"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def collector_started(interval: float) -> None:
    """Log collection loop startup."""
    info(f"Collector started [dim](every {interval:g}s)[/]", Icon.OK)


def collector_stopping() -> None:
    """Log collection loop shutdown initiated."""
    info("Collector stopping...", Icon.WAIT)


def collector_stopped() -> None:
    """Log collection loop shutdown complete."""
    info("Collector stopped", Icon.OK)


def signal_received(name: str) -> None:
    """Log signal received."""
    info(f"Received [bold]{name}[/]", Icon.SIGNAL)


def config_invalid(reason: str) -> None:
    """Log missing endpoint configuration."""
    error(f"Config invalid — {escape(reason)}", Icon.FAIL)


def discovery_failed(url: str, reason: str) -> None:
    """Log discovery endpoint failure."""
    error(f"Discovery failed [dim]({escape(url)})[/] — {escape(reason)}", Icon.DISCONNECTED)


def no_matching_processes(discovered: int, filters: list[str]) -> None:
    """Log that the filters left nothing to fetch."""
    warn(f"No process matched {filters} [dim]({discovered} discovered)[/]")


def stats_error(pid: int | None, reason: str) -> None:
    """Log a per-process stats failure."""
    pid_part = f"[dim](pid {pid})[/] " if pid is not None else ""
    warn(f"Stats fetch failed {pid_part}— {escape(reason)}")


def cycle_complete(emitted: int, failed: int, elapsed_ms: int) -> None:
    """Log a finished collection cycle."""
    fail_part = f", [red]{failed}[/] failed" if failed else ""
    info(
        f"[cyan]{emitted}[/] processes reported{fail_part} [dim]({elapsed_ms}ms)[/]",
        Icon.HEARTBEAT,
    )


def cycle_cancelled() -> None:
    """Log a cycle cut short by shutdown."""
    warn("Cycle cancelled — partial results reported")


def cycle_failed(error_msg: str) -> None:
    """Log an unexpected failure inside the collection loop."""
    error(f"Cycle failed: {escape(error_msg)}", Icon.FAIL)


def config_created(path: str) -> None:
    """Log config file created."""
    info(f"Created config at [cyan]{path}[/]")


def config_summary(all_pids_url: str, by_pid_url: str, filters: list[str]) -> None:
    """Log config summary."""
    filter_part = ", ".join(filters) if filters else "all"
    info(
        f"Endpoints: [cyan]{escape(all_pids_url)}[/] → [cyan]{escape(by_pid_url)}[/], "
        f"filters=[cyan]{escape(filter_part)}[/]"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config) -> None:
    """Configure structlog to write JSON Lines to the rotating log file.

    Both console and file use local time.

    Args:
        config: Application config with paths
    """
    # Ensure state directory exists for log file
    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.system.log_max_bytes,
        backupCount=config.system.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.INFO)

    # Clear any existing handlers
    stdlib_root.handlers.clear()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source("collector"),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source("collector"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Console output is handled by Rich (see log functions above)
    # structlog only writes to JSON file for machine parsing
