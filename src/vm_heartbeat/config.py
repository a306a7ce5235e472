"""Configuration system for vm-heartbeat."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

from vm_heartbeat.errors import ConfigError


@dataclass
class EndpointsConfig:
    """JVM agent endpoints and process selection."""

    all_pids_url: str = "http://localhost:7782/vm"  # Discovery endpoint
    by_pid_url: str = "http://localhost:7782/vm/{id}/stats"  # {id} replaced by the pid
    pid_filters: list[str] = field(default_factory=list)  # Empty list means all pids


@dataclass
class HttpConfig:
    """HTTP client behaviour."""

    timeout: float = 5.0  # Seconds per call
    max_concurrency: int = 4  # Simultaneous per-pid stats requests


@dataclass
class SystemConfig:
    """Collection loop and log file settings."""

    interval: float = 10.0  # Seconds between collection cycles
    # Log file rotation
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    endpoints: EndpointsConfig = field(default_factory=EndpointsConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "vm-heartbeat"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "vm-heartbeat"

    @property
    def log_path(self) -> Path:
        """Collector log path (JSON Lines)."""
        return self.state_dir / "heartbeat.log"

    def validate_endpoints(self) -> ConfigError | None:
        """Return a ConfigError if either endpoint is unset, else None."""
        ep = self.endpoints
        if not ep.all_pids_url or not ep.by_pid_url:
            return ConfigError(
                "heartbeat collector needs both endpoints "
                f"(all_pids_url={ep.all_pids_url!r}, by_pid_url={ep.by_pid_url!r})"
            )
        return None

    def to_toml(self) -> str:
        """Render every section as a TOML document."""
        doc = tomlkit.document()
        for name in ("endpoints", "http", "system"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_toml())

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() of an empty file are identical.

        Raises:
            ValueError: If the file cannot be parsed or holds invalid values
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        for section in ("endpoints", "http", "system"):
            if not isinstance(data.get(section, {}), dict):
                raise ValueError(f"[{section}] must be a table in {path}")

        return cls(
            endpoints=_load_endpoints_config(data.get("endpoints", {})),
            http=_load_http_config(data.get("http", {})),
            system=_load_system_config(data.get("system", {})),
        )


def _get_number(data: dict, key: str, default: float) -> float:
    """Read an int or float setting, rejecting other types."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)


def _get_integer(data: dict, key: str, default: int) -> int:
    """Read an integer setting, rejecting other types."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return int(value)


def _get_string(data: dict, key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return str(value)


def _load_endpoints_config(data: dict) -> EndpointsConfig:
    """Load endpoints config from TOML data."""
    defaults = EndpointsConfig()
    pid_filters = data.get("pid_filters", defaults.pid_filters)
    if not isinstance(pid_filters, list) or not all(isinstance(f, str) for f in pid_filters):
        raise ValueError(f"pid_filters must be a list of strings, got {pid_filters!r}")

    return EndpointsConfig(
        all_pids_url=_get_string(data, "all_pids_url", defaults.all_pids_url),
        by_pid_url=_get_string(data, "by_pid_url", defaults.by_pid_url),
        pid_filters=[str(f) for f in pid_filters],
    )


def _load_http_config(data: dict) -> HttpConfig:
    """Load HTTP config from TOML data."""
    defaults = HttpConfig()
    timeout = _get_number(data, "timeout", defaults.timeout)
    max_concurrency = _get_integer(data, "max_concurrency", defaults.max_concurrency)

    if timeout <= 0:
        raise ValueError(f"timeout must be > 0, got {timeout}")
    if max_concurrency < 1:
        raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")

    return HttpConfig(timeout=timeout, max_concurrency=max_concurrency)


def _load_system_config(data: dict) -> SystemConfig:
    """Load system config from TOML data."""
    defaults = SystemConfig()
    interval = _get_number(data, "interval", defaults.interval)
    log_max_bytes = _get_integer(data, "log_max_bytes", defaults.log_max_bytes)
    log_backup_count = _get_integer(data, "log_backup_count", defaults.log_backup_count)

    if interval <= 0:
        raise ValueError(f"interval must be > 0, got {interval}")
    if log_max_bytes < 1:
        raise ValueError(f"log_max_bytes must be >= 1, got {log_max_bytes}")
    if log_backup_count < 0:
        raise ValueError(f"log_backup_count must be >= 0, got {log_backup_count}")

    return SystemConfig(
        interval=interval,
        log_max_bytes=log_max_bytes,
        log_backup_count=log_backup_count,
    )
