"""Datetime handling: lax input -> strict ISO-8601 UTC output."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import pendulum


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a lax datetime string into a timezone-aware datetime.

    Accepts ISO 8601 variants (with or without ``T``, fractional seconds or
    offset) as well as RFC 1123 style HTTP dates as returned by some storage
    providers. Missing timezone defaults to default_tz.

    Raises ValueError if the value cannot be parsed.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    value_str = value.strip()
    if value_str.lower() == "now":
        msg = f"Not a fixed datetime: {value_str!r}"
        raise ValueError(msg)
    try:
        parsed = pendulum.parse(value_str, tz=default_tz, strict=False, exact=True)
    except (ValueError, OverflowError):
        try:
            return parsedate_to_datetime(value_str)
        except (TypeError, ValueError) as exc:
            msg = f"Unrecognized datetime: {value_str!r}"
            raise ValueError(msg) from exc
    if isinstance(parsed, pendulum.DateTime):
        return parsed
    if isinstance(parsed, pendulum.Date):
        # pendulum.parse returns Date for date-only strings
        return pendulum.datetime(parsed.year, parsed.month, parsed.day, tz=default_tz)
    # Time, Duration and Interval carry no calendar date of their own
    msg = f"Not a calendar datetime: {value_str!r}"
    raise ValueError(msg)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with millisecond precision.

    Output: YYYY-MM-DDTHH:MM:SS.mmmZ
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    utc = dt.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def normalize_timestamp(value: datetime | str | None) -> str | None:
    """Normalize a provider timestamp to the strict form, or None when absent."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return format_timestamp(parse_datetime(value))


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Return the current UTC time in the strict timestamp form."""
    return format_timestamp(now_utc())
