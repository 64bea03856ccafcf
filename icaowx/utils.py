"""Utility functions."""

import re
import time
from datetime import datetime
from typing import Iterable, List, Optional

# RFC 3339 date-time: full date, full time, mandatory offset.
_RFC3339_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)
_FRACTION_RE = re.compile(r"\.(\d+)(?=[+-])")


class TimestampError(ValueError):
    """Raised when a report timestamp is not a valid RFC 3339 date-time."""


def validate_icao_location(loc: str) -> bool:
    """
    Check a string against the ICAO location pattern [A-Z][A-Z0-9]{3}.

    Args:
        loc: Candidate location code (must already be uppercase)

    Returns:
        True if the code has a valid shape
    """
    if len(loc) != 4:
        return False
    if not ("A" <= loc[0] <= "Z"):
        return False
    for c in loc[1:]:
        if not ("A" <= c <= "Z" or "0" <= c <= "9"):
            return False
    return True


def parse_query_list(values: Iterable[str]) -> List[str]:
    """
    Expand comma-separated query values into one flat list.

    For example ["a,b", "c"] results in ["a", "b", "c"].
    """
    result: List[str] = []
    for value in values:
        result.extend(value.split(","))
    return result


def parse_rfc3339(time_str: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime."""
    if not _RFC3339_RE.match(time_str):
        raise TimestampError(f"Cannot parse '{time_str}' as RFC 3339 time")
    normalized = time_str.replace("t", "T").replace(" ", "T")
    if normalized[-1] in "Zz":
        normalized = normalized[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fraction digits.
    normalized = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalized)
    try:
        return datetime.fromisoformat(normalized)
    except ValueError as e:
        raise TimestampError(f"Cannot parse '{time_str}' as RFC 3339 time: {e}") from e


def expire_seconds(time_str: str, window: int, now: Optional[float] = None) -> int:
    """
    Calculate how many seconds remain until a report expires.

    The report expires `window` seconds after `time_str`. The result may be
    zero or negative when the report is already stale.

    Args:
        time_str: RFC 3339 timestamp of the report
        window: Freshness window in seconds
        now: Current unix time (defaults to time.time())

    Returns:
        Remaining seconds until expiry

    Raises:
        TimestampError: If time_str cannot be parsed
    """
    if now is None:
        now = time.time()
    start = parse_rfc3339(time_str)
    return int(start.timestamp()) + window - int(now)


def feet_to_meters(feet: int) -> int:
    """Convert feet to whole meters, truncating toward zero."""
    return int(feet * 3048 / 10000)
