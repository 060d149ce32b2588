from typing import Optional


def format_bytes(size):
    """Format bytes as human-readable string."""
    if size is None:
        return "N/A"
    if size < 1024:
        return f"{int(size)} B"
    size /= 1024
    for unit in ['KB', 'MB', 'GB']:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def format_rate(rate):
    return f"{format_bytes(rate)}/s"


def format_duration(seconds: Optional[int]) -> str:
    if seconds is None:
        return "∞"
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours >= 24:
        days, hours = divmod(hours, 24)
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
