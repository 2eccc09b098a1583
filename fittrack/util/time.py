from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return utcnow().replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_iso_date(s: str) -> date:
    """Parse a strict YYYY-MM-DD calendar date."""
    if len(s) != 10:
        raise ValueError(f"not an ISO calendar date: {s!r}")
    return datetime.strptime(s, "%Y-%m-%d").date()
