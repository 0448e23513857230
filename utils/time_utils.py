"""Timestamp helpers for transcript ordering."""

import re
from datetime import datetime, timezone
from typing import Any, Optional

# Epoch numbers above this are taken to be milliseconds (JavaScript style).
_MILLISECOND_THRESHOLD = 100_000_000_000

# Java and database timestamps may carry 1-9 fractional digits; fromisoformat
# on 3.10 accepts only 3 or 6.
_FRACTION = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def _six_digit_fraction(match: "re.Match[str]") -> str:
    return f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string, epoch number or datetime into aware UTC.

    Returns None when the value is missing or cannot be interpreted, so
    callers can substitute the current time.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if abs(value) >= _MILLISECOND_THRESHOLD else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(_six_digit_fraction, text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None
