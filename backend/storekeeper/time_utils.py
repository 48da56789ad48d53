# Overview: Datetime helpers; the engine stores naive UTC and serializes with a trailing Z.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC now, the form every DateTime column holds."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a client-supplied ISO-8601 string into naive UTC.

    Offsets ("Z", "+03:00") are converted; a string without one is taken as
    UTC already. Blank input gives None, garbage gives None so the caller can
    word its own ValidationError.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(value: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing Z, as documents are returned to clients."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"


def day_label(value: Optional[datetime]) -> str:
    """DD/MM/YYYY, the form debt descriptions use; today when the document has no date yet."""
    return (value or utcnow()).strftime("%d/%m/%Y")
