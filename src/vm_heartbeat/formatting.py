"""Formatting utilities for CLI tables."""


def format_uptime(uptime_ms: int) -> str:
    """Format a JVM uptime in milliseconds (compact).

    Returns:
        - Under a minute: "42.0s"
        - Under an hour: "12m05s"
        - Under a day: "3h07m"
        - Otherwise: "2d04h"
    """
    seconds = uptime_ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    whole = int(seconds)
    minutes, secs = divmod(whole, 60)
    if minutes < 60:
        return f"{minutes}m{secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h{minutes:02d}m"
    days, hours = divmod(hours, 24)
    return f"{days}d{hours:02d}h"


def format_bytes(size: int) -> str:
    """Format a byte count with a binary unit ("512B", "1.5KiB", "2.0GiB")."""
    value = float(size)
    for unit in ("B", "KiB", "MiB"):
        if abs(value) < 1024:
            return f"{int(value)}B" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}GiB"
