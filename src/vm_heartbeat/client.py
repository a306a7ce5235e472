"""HTTP client for the JVM agent discovery and per-process stats endpoints."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from vm_heartbeat.errors import (
    ConfigError,
    DecodeError,
    HeartbeatError,
    TransportError,
    ValidationError,
)
from vm_heartbeat.models import (
    CollectionResult,
    ProcessDescriptor,
    ProcessStatistics,
    decode_process_list,
)

if TYPE_CHECKING:
    from vm_heartbeat.config import HttpConfig

log = structlog.get_logger()

# Placeholder in the stats URL template replaced by the decimal process id
PID_PLACEHOLDER = "{id}"


def make_http_client(
    config: HttpConfig, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    """Build the HTTP client shared by one collector.

    Args:
        config: HTTP settings (per-call timeout, concurrency)
        transport: Optional transport override (tests pass httpx.MockTransport)
    """
    return httpx.AsyncClient(
        timeout=config.timeout,
        limits=httpx.Limits(max_connections=config.max_concurrency),
        headers={"Accept": "application/json"},
        transport=transport,
    )


async def _get_json(http: httpx.AsyncClient, url: str, pid: int | None = None) -> Any:
    """GET url and return the decoded JSON body.

    Raises:
        TransportError: Connection failure, timeout or non-2xx status
        DecodeError: Body is not valid JSON
    """
    try:
        resp = await http.get(url)
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise TransportError(
            f"service returned HTTP {e.response.status_code}", pid=pid, url=url
        ) from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportError(f"request failed: {type(e).__name__}", pid=pid, url=url) from e

    try:
        return resp.json()
    except ValueError as e:
        raise DecodeError("response body is not valid JSON", pid=pid, url=url) from e


# ─────────────────────────────────────────────────────────────────────────────
# Discovery
# ─────────────────────────────────────────────────────────────────────────────


async def discover(http: httpx.AsyncClient, url: str) -> list[ProcessDescriptor]:
    """Fetch every process the agent knows about.

    Returns descriptors exactly as received, in response order.

    Raises:
        ConfigError: url is empty or malformed
        TransportError: The call could not complete
        DecodeError: The body is not {"vms": [...]}
    """
    if not url:
        raise ConfigError("discovery url is not configured")
    try:
        _check_url(url)
    except ValidationError as e:
        raise ConfigError(f"discovery url is invalid: {e.message}", url=url) from e.__cause__

    log.debug("discovery_request", url=url)
    body = await _get_json(http, url)
    try:
        descriptors = decode_process_list(body)
    except DecodeError as e:
        e.url = url
        raise
    log.debug("discovery_complete", url=url, count=len(descriptors))
    return descriptors


# ─────────────────────────────────────────────────────────────────────────────
# Per-process stats
# ─────────────────────────────────────────────────────────────────────────────


def _check_url(url: str, pid: int | None = None) -> None:
    """Raise ValidationError unless url parses with an http(s) scheme and a host."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise ValidationError("malformed url", pid=pid, url=url) from e
    if parsed.scheme not in ("http", "https"):
        raise ValidationError(f"unsupported url scheme {parsed.scheme!r}", pid=pid, url=url)
    if not parsed.host:
        raise ValidationError("url has no host", pid=pid, url=url)


def build_stats_url(template: str, pid: int) -> str:
    """Substitute pid into the template and check the result is a usable URL.

    Raises:
        ValidationError: The resulting URL is malformed
    """
    url = template.replace(PID_PLACEHOLDER, str(pid))
    _check_url(url, pid)
    return url


async def fetch_one(http: httpx.AsyncClient, template: str, pid: int) -> ProcessStatistics:
    """Fetch and decode stats for a single process.

    Raises:
        ValidationError: Malformed URL or misaligned memory arrays
        TransportError: The call could not complete
        DecodeError: The body is not a stats payload
    """
    url = build_stats_url(template, pid)
    log.debug("stats_request", pid=pid, url=url)
    body = await _get_json(http, url, pid=pid)
    try:
        return ProcessStatistics.from_dict(body)
    except (DecodeError, ValidationError) as e:
        e.pid = pid
        e.url = url
        raise


async def _join(tasks: list[asyncio.Task], cancel: asyncio.Event | None) -> None:
    """Wait for every task, or until cancel is set.

    On cancel, in-flight and pending tasks are cancelled and awaited.
    """
    if cancel is None:
        await asyncio.gather(*tasks)
        return

    waiter = asyncio.create_task(cancel.wait())
    pending: set[asyncio.Task] = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(
                pending | {waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            if waiter in done:
                break
            pending.discard(waiter)
    finally:
        waiter.cancel()
        pending.discard(waiter)
        for task in pending:
            task.cancel()
        await asyncio.gather(waiter, *pending, return_exceptions=True)

    # Surface unexpected (non-HeartbeatError) failures from finished workers
    for task in tasks:
        if task.done() and not task.cancelled():
            task.result()


async def fetch_stats(
    http: httpx.AsyncClient,
    url_template: str,
    ids: Sequence[int],
    *,
    max_concurrency: int = 1,
    cancel: asyncio.Event | None = None,
) -> CollectionResult:
    """Fetch stats for every id, isolating failures per id.

    Each id gets one GET. A failing id adds one error to the result and never
    affects the others. Fetches run on a worker pool bounded by
    max_concurrency; with the default of 1 they run one after another in the
    given order.

    Args:
        http: Shared HTTP client
        url_template: Stats URL containing the {id} placeholder
        ids: Process ids to fetch
        max_concurrency: Maximum simultaneous requests
        cancel: Optional event; when set, outstanding fetches are abandoned
            and the result holds whatever finished

    Returns:
        CollectionResult with successes keyed by id and one error per failure.
        An empty template or empty id list yields a single ConfigError and
        no HTTP calls.
    """
    result = CollectionResult()
    if not url_template:
        result.errors.append(ConfigError("stats url template is not configured"))
        return result
    if not ids:
        result.errors.append(ConfigError("no process ids to fetch stats for"))
        return result
    if max_concurrency < 1:
        result.errors.append(ConfigError(f"max_concurrency must be >= 1, got {max_concurrency}"))
        return result

    semaphore = asyncio.Semaphore(max_concurrency)
    # One private slot per id, merged after join
    slots: list[ProcessStatistics | HeartbeatError | None] = [None] * len(ids)

    async def worker(index: int, pid: int) -> None:
        async with semaphore:
            if cancel is not None and cancel.is_set():
                return
            try:
                slots[index] = await fetch_one(http, url_template, pid)
            except HeartbeatError as e:
                log.warning("stats_fetch_failed", pid=pid, url=e.url, error=str(e))
                slots[index] = e

    log.debug("stats_fetch_started", count=len(ids), max_concurrency=max_concurrency)
    tasks = [asyncio.create_task(worker(i, pid)) for i, pid in enumerate(ids)]
    await _join(tasks, cancel)

    for pid, slot in zip(ids, slots):
        if isinstance(slot, HeartbeatError):
            result.errors.append(slot)
        elif slot is not None:
            result.stats[pid] = slot
    result.cancelled = any(slot is None for slot in slots)
    if result.cancelled:
        log.info(
            "stats_fetch_cancelled",
            completed=len(result.stats) + len(result.errors),
            requested=len(ids),
        )
    return result
