"""Time helpers shared by the scheduler, catalog and configuration.

All timestamps handled by doccrawl are naive UTC datetimes, matching what
SQLite hands back from ``DateTime`` columns.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Union

# Zero value for crawl times. A package whose next crawl is EPOCH is due now.
EPOCH = datetime(1970, 1, 1)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """Parse a duration setting.

    Accepts a timedelta, a number of seconds, or a Go-style duration
    string such as ``"90s"``, ``"10m"`` or ``"1h30m"``. ``"0"`` and ``0``
    are both zero.

    Raises:
        ValueError: If the value cannot be parsed or is negative.
    """
    if isinstance(value, timedelta):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    elif isinstance(value, (int, float)):
        result = timedelta(seconds=value)
    else:
        text = value.strip().replace(" ", "")
        if not text:
            raise ValueError("Empty duration")
        try:
            result = timedelta(seconds=float(text))
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
                pos = match.end()
            if pos != len(text) or pos == 0:
                raise ValueError(f"Invalid duration: {value!r}")
            result = timedelta(seconds=seconds)

    if result < timedelta(0):
        raise ValueError(f"Duration must not be negative: {value!r}")
    return result


def format_duration(value: timedelta) -> str:
    """Format a timedelta as a compact Go-style string (``1h30m0s``)."""
    total = int(value.total_seconds())
    if total == 0:
        return "0s"
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return "".join(parts)
