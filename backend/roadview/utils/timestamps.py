"""
Timestamp helpers.

Survey sources write wall-clock strings ("2024-05-14 10:03:21.250"), ISO
strings, or raw epoch numbers. Everything is reduced to seconds since the
Unix epoch (naive values are read as UTC) for ordering and matching.
"""

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Optional


DATE_PATTERN = re.compile(r"^\d{4}[-/]\d{2}[-/]\d{2}")
TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}(?:\.\d+)?))?$")

_FORMATS = [
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S.%f",
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d_%H-%M-%S",
    "%Y-%m-%d",
]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a timestamp string into an aware datetime (UTC for naive input).

    Returns None for anything that does not carry a calendar date, so a bare
    "10:00:00" never silently picks up today's date.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    epoch = _parse_epoch_number(text)
    if epoch is not None:
        try:
            return _EPOCH + timedelta(seconds=epoch)
        except OverflowError:
            return None

    if not DATE_PATTERN.match(text):
        return None

    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_epoch_seconds(value) -> Optional[float]:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return (parsed - _EPOCH).total_seconds()


def format_timestamp(epoch_s: float) -> str:
    """Format epoch seconds as 'YYYY-MM-DD HH:MM:SS[.fff]' (UTC)."""
    dt = _EPOCH + timedelta(seconds=epoch_s)
    text = dt.strftime("%Y-%m-%d %H:%M:%S")
    if dt.microsecond:
        text += f".{dt.microsecond // 1000:03d}"
    return text


def split_timestamp(timestamp: str) -> tuple[str, str]:
    """Split a combined timestamp into (date, time) strings."""
    text = timestamp.strip().replace("T", " ")
    if " " in text:
        date, time = text.split(" ", 1)
        return date, time
    return text, ""


def seconds_of_day(value) -> Optional[float]:
    """
    Seconds since midnight for 'HH:MM[:SS[.fff]]' or a full timestamp.
    """
    if value is None:
        return None
    text = str(value).strip()
    match = TIME_PATTERN.match(text)
    if match:
        hours, minutes, seconds = match.groups()
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds or 0.0)
    parsed = parse_timestamp(text)
    if parsed is None:
        return None
    return parsed.hour * 3600 + parsed.minute * 60 + parsed.second + parsed.microsecond / 1e6


def _parse_epoch_number(text: str) -> Optional[float]:
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    # Epoch milliseconds vs seconds; small numbers are not timestamps
    if number > 1.0e11:
        return number / 1000.0
    if number > 1.0e8:
        return number
    return None
