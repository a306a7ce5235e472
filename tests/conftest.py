"""Shared test fixtures for vm-heartbeat."""

import re
from typing import Any

import httpx
import pytest
from structlog.testing import capture_logs

from vm_heartbeat.client import make_http_client
from vm_heartbeat.config import Config, EndpointsConfig, HttpConfig, SystemConfig

ALL_PIDS_URL = "http://agent.test/vm"
BY_PID_URL = "http://agent.test/vm/{id}/stats"

_STATS_PATH = re.compile(r"/vm/(\d+)/stats")


def make_stats_payload(
    name: str = "eclipse-ide",
    up_time: int = 120_000,
    application_time: int = 95_000,
    os_frequency: int = 1_000_000_000,
    gen_names: list[str] | None = None,
    gen_capacity: list[int] | None = None,
    gen_used: list[int] | None = None,
    gen_max_capacity: list[int] | None = None,
    additional_info: Any = None,
) -> dict:
    """Build a stats payload in the agent's wire format."""
    return {
        "name": name,
        "upTime": up_time,
        "applicationTime": application_time,
        "osFrequency": os_frequency,
        "classes": {
            "loadedClasses": 8123,
            "unloadedClasses": 12,
            "sharedLoadedClasses": 1500,
            "sharedUnloadedClasses": 0,
        },
        "threads": {
            "threadsLive": 42,
            "threadsDaemon": 30,
            "threadsLivePeak": 51,
            "threadsStarted": 77,
        },
        "memory": {
            "genName": gen_names if gen_names is not None else ["eden", "survivor", "old"],
            "genCapacity": gen_capacity if gen_capacity is not None else [1024, 256, 4096],
            "genUsed": gen_used if gen_used is not None else [512, 64, 2048],
            "genMaxCapacity": (
                gen_max_capacity if gen_max_capacity is not None else [2048, 512, 8192]
            ),
        },
        "additionalInfo": additional_info,
    }


class FakeAgent:
    """In-process JVM agent served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.vms: list[dict] = []
        self.stats: dict[int, Any] = {}
        self.discovery: httpx.Response | Exception | None = None
        self.requests: list[httpx.Request] = []

    def add_vm(self, pid: int, name: str, desc: str = "", stats: Any = None) -> None:
        """Register a process.

        stats is what its stats endpoint serves: a payload dict, a ready
        response, an exception to raise, or an async callable taking the
        request. Defaults to a valid payload.
        """
        self.vms.append({"id": pid, "name": name, "desc": desc})
        self.stats[pid] = stats if stats is not None else make_stats_payload(name=name)

    @property
    def stats_requests(self) -> list[int]:
        """Pids whose stats endpoint was requested, in request order."""
        pids = []
        for request in self.requests:
            match = _STATS_PATH.fullmatch(request.url.path)
            if match:
                pids.append(int(match.group(1)))
        return pids

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/vm":
            return self._resolve(self.discovery, request, {"vms": self.vms})

        match = _STATS_PATH.fullmatch(path)
        if match and int(match.group(1)) in self.stats:
            entry = self.stats[int(match.group(1))]
            if callable(entry):
                entry = await entry(request)
            return self._resolve(entry, request, None)

        return httpx.Response(404, json={"error": "not found"})

    @staticmethod
    def _resolve(entry: Any, request: httpx.Request, default: Any) -> httpx.Response:
        if entry is None:
            return httpx.Response(200, json=default)
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, httpx.Response):
            return entry
        return httpx.Response(200, json=entry)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self, config: Config) -> httpx.AsyncClient:
        """HTTP client wired to this agent."""
        return make_http_client(config.http, transport=self.transport())


@pytest.fixture
def agent() -> FakeAgent:
    """An empty fake agent."""
    return FakeAgent()


@pytest.fixture
def config() -> Config:
    """Config pointing at the fake agent."""
    return Config(
        endpoints=EndpointsConfig(all_pids_url=ALL_PIDS_URL, by_pid_url=BY_PID_URL),
        http=HttpConfig(timeout=1.0, max_concurrency=4),
        system=SystemConfig(interval=0.05),
    )


@pytest.fixture(autouse=True)
def log_output():
    """Capture structlog events instead of printing them."""
    with capture_logs() as captured:
        yield captured
