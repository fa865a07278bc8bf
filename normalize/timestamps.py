from __future__ import annotations

import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from dateutil import parser as dtparser


# "15/08/2025 10:00 UTC" or "8/15/2025 10:00:00 AM" as embedded in GDACS titles.
_TITLE_DATE_RE = re.compile(
    r"\b(\d{1,2}/\d{1,2}/\d{4}\s+\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AP]M)?)(?:\s*UTC)?",
    flags=re.IGNORECASE,
)


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(tz=UTC)


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return to_utc(dt).isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_timestamp(text: str | None) -> datetime | None:
    if not text or not text.strip():
        return None
    text = text.strip()
    try:
        return to_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass
    try:
        return to_utc(dtparser.parse(text))
    except (ValueError, OverflowError):
        return None


def parse_title_timestamp(title: str) -> datetime | None:
    match = _TITLE_DATE_RE.search(title)
    if match is None:
        return None
    stamp = match.group(1)
    # Twelve-hour stamps come from US-formatted text, 24h ones from day-first titles.
    dayfirst = not re.search(r"[AP]M$", stamp, flags=re.IGNORECASE)
    try:
        return to_utc(dtparser.parse(stamp, dayfirst=dayfirst))
    except (ValueError, OverflowError):
        return None
