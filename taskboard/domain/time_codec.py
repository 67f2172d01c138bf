from __future__ import annotations

from .errors import ValidationError


def minutes_to_seconds(minutes: int) -> int:
    return minutes * 60


def seconds_to_minutes(seconds: int) -> int:
    return seconds // 60


def format_duration(seconds: int) -> str:
    """Render seconds as ``HH:MM:SS``; negative values get a leading ``-``."""
    sign = "-" if seconds < 0 else ""
    total = abs(int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"


def format_duration_short(seconds: int) -> str:
    sign = "-" if seconds < 0 else ""
    minutes, secs = divmod(abs(int(seconds)), 60)
    return f"{sign}{minutes:02d}:{secs:02d}"


def format_overrun(seconds: int) -> str:
    return f"+{format_duration(abs(int(seconds)))}"


def parse_duration(text: str) -> int:
    parts = text.strip().split(":")
    if not 2 <= len(parts) <= 3 or not all(part.isdigit() for part in parts):
        raise ValidationError(f"Invalid duration {text!r}, expected HH:MM:SS or MM:SS")
    values = [int(part) for part in parts]
    if len(values) == 2:
        values.insert(0, 0)
    hours, minutes, secs = values
    if minutes >= 60 or secs >= 60:
        raise ValidationError(f"Invalid duration {text!r}")
    return hours * 3600 + minutes * 60 + secs
