"""Data model for discovered processes and their runtime statistics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from vm_heartbeat.errors import DecodeError, HeartbeatError, ValidationError

# Measurement name for emitted metric records
MEASUREMENT = "sysheartbeat"


# ─────────────────────────────────────────────────────────────────────────────
# Decode helpers
# ─────────────────────────────────────────────────────────────────────────────


def _get_int(data: dict, key: str) -> int:
    """Read an integer field; missing keys decode as 0."""
    value = data.get(key, 0)
    if value is None:
        return 0
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"field {key!r} must be an integer, got {type(value).__name__}")
    return value


def _get_str(data: dict, key: str) -> str:
    """Read a string field; missing keys decode as empty string."""
    value = data.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value


def _get_object(data: dict, key: str) -> dict:
    value = data.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"field {key!r} must be an object, got {type(value).__name__}")
    return value


def _get_int_list(data: dict, key: str) -> list[int]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"field {key!r} must be an array, got {type(value).__name__}")
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int):
            raise DecodeError(f"field {key!r} must contain only integers")
    return list(value)


def _get_str_list(data: dict, key: str) -> list[str]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"field {key!r} must be an array, got {type(value).__name__}")
    for item in value:
        if not isinstance(item, str):
            raise DecodeError(f"field {key!r} must contain only strings")
    return list(value)


# ─────────────────────────────────────────────────────────────────────────────
# Discovery
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProcessDescriptor:
    """Identity of one process reported by the discovery endpoint."""

    id: int
    name: str
    description: str

    @classmethod
    def from_dict(cls, data: dict) -> ProcessDescriptor:
        """Decode a discovery entry ({"id", "name", "desc"})."""
        if not isinstance(data, dict):
            raise DecodeError(f"process entry must be an object, got {type(data).__name__}")
        if data.get("id") is None:
            raise DecodeError("process entry is missing 'id'")
        return cls(
            id=_get_int(data, "id"),
            name=_get_str(data, "name"),
            description=_get_str(data, "desc"),
        )

    def to_dict(self) -> dict:
        """Serialize to the wire shape."""
        return {"id": self.id, "name": self.name, "desc": self.description}


def decode_process_list(body: Any) -> list[ProcessDescriptor]:
    """Decode a discovery response body ({"vms": [...]}) preserving order."""
    if not isinstance(body, dict):
        raise DecodeError(f"discovery response must be an object, got {type(body).__name__}")
    vms = body.get("vms", [])
    if vms is None:
        return []
    if not isinstance(vms, list):
        raise DecodeError(f"'vms' must be an array, got {type(vms).__name__}")
    return [ProcessDescriptor.from_dict(entry) for entry in vms]


# ─────────────────────────────────────────────────────────────────────────────
# Statistics
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ClassLoading:
    """Class loader counters."""

    loaded: int = 0
    unloaded: int = 0
    shared_loaded: int = 0
    shared_unloaded: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> ClassLoading:
        return cls(
            loaded=_get_int(data, "loadedClasses"),
            unloaded=_get_int(data, "unloadedClasses"),
            shared_loaded=_get_int(data, "sharedLoadedClasses"),
            shared_unloaded=_get_int(data, "sharedUnloadedClasses"),
        )


@dataclass
class ThreadCounts:
    """Thread counters."""

    live: int = 0
    daemon: int = 0
    live_peak: int = 0
    started: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> ThreadCounts:
        return cls(
            live=_get_int(data, "threadsLive"),
            daemon=_get_int(data, "threadsDaemon"),
            live_peak=_get_int(data, "threadsLivePeak"),
            started=_get_int(data, "threadsStarted"),
        )


@dataclass
class MemoryGenerations:
    """Per-generation heap figures.

    The four lists are index-aligned: entry i of every list describes the
    generation named names[i].
    """

    names: list[str] = field(default_factory=list)
    capacity: list[int] = field(default_factory=list)
    used: list[int] = field(default_factory=list)
    max_capacity: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> MemoryGenerations:
        return cls(
            names=_get_str_list(data, "genName"),
            capacity=_get_int_list(data, "genCapacity"),
            used=_get_int_list(data, "genUsed"),
            max_capacity=_get_int_list(data, "genMaxCapacity"),
        )

    def validate(self) -> None:
        """Raise ValidationError unless every array has the same length."""
        lengths = {
            "genName": len(self.names),
            "genCapacity": len(self.capacity),
            "genUsed": len(self.used),
            "genMaxCapacity": len(self.max_capacity),
        }
        if len(set(lengths.values())) > 1:
            detail = ", ".join(f"{k}={v}" for k, v in lengths.items())
            raise ValidationError(f"memory arrays are not aligned ({detail})")


@dataclass
class ProcessStatistics:
    """Runtime statistics for one process.

    This is the decoded form of the per-process stats endpoint. It is built
    fresh every cycle and never cached.
    """

    name: str
    up_time_ms: int = 0
    application_time_ms: int = 0
    os_frequency: int = 0
    class_loading: ClassLoading = field(default_factory=ClassLoading)
    threads: ThreadCounts = field(default_factory=ThreadCounts)
    memory: MemoryGenerations = field(default_factory=MemoryGenerations)
    additional_info: Any = None  # Opaque JSON tree, passed through as received

    @classmethod
    def from_dict(cls, data: Any) -> ProcessStatistics:
        """Decode a stats response body.

        Raises:
            DecodeError: If the body does not have the expected shape
            ValidationError: If the memory arrays are not index-aligned
        """
        if not isinstance(data, dict):
            raise DecodeError(f"stats response must be an object, got {type(data).__name__}")
        stats = cls(
            name=_get_str(data, "name"),
            up_time_ms=_get_int(data, "upTime"),
            application_time_ms=_get_int(data, "applicationTime"),
            os_frequency=_get_int(data, "osFrequency"),
            class_loading=ClassLoading.from_dict(_get_object(data, "classes")),
            threads=ThreadCounts.from_dict(_get_object(data, "threads")),
            memory=MemoryGenerations.from_dict(_get_object(data, "memory")),
            additional_info=data.get("additionalInfo"),
        )
        stats.memory.validate()
        return stats


# ─────────────────────────────────────────────────────────────────────────────
# Results
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class CollectionResult:
    """Outcome of fetching stats for a set of process ids.

    stats only holds ids that succeeded; every failure is one entry in errors.
    """

    stats: dict[int, ProcessStatistics] = field(default_factory=dict)
    errors: list[HeartbeatError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_pids(self) -> list[int]:
        """Process ids named by per-id errors."""
        return [e.pid for e in self.errors if e.pid is not None]


@dataclass
class MetricRecord:
    """One (name, tags, fields, timestamp) unit handed to an accumulator."""

    name: str
    tags: dict[str, str]
    fields: dict[str, Any]
    timestamp: datetime

    @classmethod
    def from_stats(
        cls, pid: int, stats: ProcessStatistics, timestamp: datetime | None = None
    ) -> MetricRecord:
        """Flatten ProcessStatistics into a metric record tagged by pid."""
        pid_str = str(pid)
        fields = {
            "name": stats.name,
            "pid": pid_str,
            "up_time": stats.up_time_ms,
            "application_time": stats.application_time_ms,
            "os_frequency": stats.os_frequency,
            # Class loading
            "classes_loaded_classes": stats.class_loading.loaded,
            "classes_unloaded_classes": stats.class_loading.unloaded,
            "classes_sharedloaded_classes": stats.class_loading.shared_loaded,
            "classes_sharedunloaded_classes": stats.class_loading.shared_unloaded,
            # Threads
            "threads_threads_live": stats.threads.live,
            "threads_threads_daemon": stats.threads.daemon,
            "threads_threads_livepeak": stats.threads.live_peak,
            "threads_threads_started": stats.threads.started,
            # Memory generations (index-aligned)
            "memory_genname": list(stats.memory.names),
            "memory_gencapacity": list(stats.memory.capacity),
            "memory_genused": list(stats.memory.used),
            "memory_gen_maxcapacity": list(stats.memory.max_capacity),
            "additionalinfo": stats.additional_info,
        }
        return cls(
            name=MEASUREMENT,
            tags={"pid": pid_str},
            fields=fields,
            timestamp=timestamp or datetime.now(),
        )

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "name": self.name,
            "tags": dict(self.tags),
            "fields": dict(self.fields),
            "timestamp": self.timestamp.isoformat(),
        }
