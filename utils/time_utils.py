from __future__ import annotations

import math
import re


_UNIT_SECONDS = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
}
_SIMPLE_DURATION_PATTERN = re.compile(r"^(\d+)\s*([a-z]+)?$")
_RELATIVE_PART_PATTERN = re.compile(r"(\d+)\s*([a-z]+)")


def parse_duration_seconds(token: str | None, *, allow_days: bool = False) -> int | None:
    """Parse ``30``, ``30s``, ``5m``, ``1h`` (and ``2d`` when allowed). Bare numbers are seconds."""
    text = (token or "").strip().lower()
    if not text:
        return None
    match = _SIMPLE_DURATION_PATTERN.match(text)
    if not match:
        return None
    value = int(match.group(1))
    if value <= 0:
        return None
    unit = match.group(2) or "s"
    multiplier = _UNIT_SECONDS.get(unit)
    if multiplier is None:
        return None
    if multiplier == 86400 and not allow_days:
        return None
    return value * multiplier


def parse_relative_delay(raw: str | None, *, max_seconds: int) -> tuple[int | None, str | None]:
    """Parse ``10m``, ``1h30m``, ``2 days from now``. Returns ``(seconds, error)``."""
    text = (raw or "").strip().lower()
    if text.endswith("from now"):
        text = text[: -len("from now")].strip()
    if not text:
        return None, "Please provide a delay like `10m`, `2h`, or `3d`."

    compact = text.replace(" ", "")
    total = 0
    consumed = 0
    for match in _RELATIVE_PART_PATTERN.finditer(compact):
        if match.start() != consumed:
            return None, "Invalid delay. Use formats like `10m`, `2h`, `1h30m`, or `3d`."
        multiplier = _UNIT_SECONDS.get(match.group(2))
        if multiplier is None:
            return None, f"Unknown time unit `{match.group(2)}`."
        total += int(match.group(1)) * multiplier
        consumed = match.end()

    if consumed == 0 or consumed != len(compact):
        return None, "Invalid delay. Include a unit, e.g. `10m`, `2h`, or `3d`."
    if total <= 0:
        return None, "Delay must be greater than zero."
    if total > max_seconds:
        return None, f"Delay cannot exceed {max_seconds // 86400} days."
    return total, None


def format_time_left(seconds: float) -> str:
    if seconds <= 0:
        return "0s"
    secs = math.ceil(seconds)
    if secs < 60:
        return f"{secs}s"
    mins = math.ceil(secs / 60)
    if mins < 60:
        return f"{mins}m"
    return f"{math.ceil(mins / 60)}h"


def discord_timestamp(ms: int | float, style: str = "f") -> str:
    return f"<t:{max(0, int(ms // 1000))}:{style}>"
