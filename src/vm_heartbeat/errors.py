"""Error taxonomy for heartbeat collection."""

from __future__ import annotations


class HeartbeatError(Exception):
    """Base class for collection failures.

    Carries the process id and URL involved (when known) so a logged or
    reported error is enough to diagnose the failing call.
    """

    kind = "error"

    def __init__(self, message: str, *, pid: int | None = None, url: str | None = None):
        super().__init__(message)
        self.message = message
        self.pid = pid
        self.url = url

    def __str__(self) -> str:
        parts = [self.message]
        if self.pid is not None:
            parts.append(f"pid={self.pid}")
        if self.url:
            parts.append(f"url={self.url}")
        if self.__cause__ is not None:
            parts.append(f"cause={self.__cause__}")
        return " ".join(parts)

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "kind": self.kind,
            "message": self.message,
            "pid": self.pid,
            "url": self.url,
            "cause": str(self.__cause__) if self.__cause__ is not None else None,
        }


class ConfigError(HeartbeatError):
    """Missing or invalid configuration. Fatal to a collection cycle."""

    kind = "config"


class TransportError(HeartbeatError):
    """HTTP call could not complete (connect failure, timeout, non-2xx)."""

    kind = "transport"


class DecodeError(HeartbeatError):
    """Response body is not JSON or does not have the expected shape."""

    kind = "decode"


class ValidationError(HeartbeatError):
    """Constructed URL is malformed or a decoded payload is inconsistent."""

    kind = "validation"
