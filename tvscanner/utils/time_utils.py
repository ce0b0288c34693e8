"""
PURPOSE: Time helpers for alert timestamps.

Alert times are displayed as server-local HH:MM. TradingView may send epoch
milliseconds ({{timenow}} in some templates), ISO strings, or an already
formatted HH:MM value.
"""

import re
import time
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

_DIGITS = re.compile(r"^\d+$")


def now_ms() -> int:
    """Return the current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def to_hhmm(value: Any) -> str:
    """
    PURPOSE: Format an alert time value as zero-padded local HH:MM.

    Digit-only values are read as epoch milliseconds; anything else goes
    through dateutil's generic parser. Values that cannot be parsed are
    returned unchanged (as a string). Never raises.

    Args:
        value: Raw time value from the alert payload.

    Returns:
        str: "HH:MM" in server-local time, or str(value) when unparseable.

    Examples:
        "09:31"                    → "09:31"
        "2024-05-01T13:45:00"      → "13:45"
        "not a time"               → "not a time"
    """
    raw = "" if value is None else str(value).strip()
    if not raw:
        return raw

    try:
        if _DIGITS.match(raw):
            parsed = datetime.fromtimestamp(int(raw) / 1000.0)
        else:
            parsed = date_parser.parse(raw)
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone()
    except (ValueError, OverflowError, OSError):
        return raw

    return f"{parsed.hour:02d}:{parsed.minute:02d}"
