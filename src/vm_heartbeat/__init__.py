"""Heartbeat collector for JVM agent process statistics."""

__version__ = "0.1.0"
