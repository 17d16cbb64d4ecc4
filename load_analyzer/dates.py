"""
Date/time normalization.

Every appointment value leaving the analyzer is rendered as canonical UTC
(``YYYY-MM-DDTHH:MM:SSZ``, no sub-second digits). Input may be:

- already canonical, or canonical with milliseconds
- relaxed ISO (no seconds, no ``Z``, space instead of ``T``)
- a date column plus a separate time column
- local wall-clock time in the sheet's timezone

Wall-clock values are converted through the IANA timezone database. An
unknown timezone name falls back to UTC rather than failing the row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .logging_config import get_logger
from .rules import DATE_FORMATS, PLACEHOLDER_TOKEN, TIME_FORMATS, TZ_ABBR_OFFSETS

logger = get_logger(__name__)

PLACEHOLDER_ERROR = "Cannot parse TBD or similar placeholders"

# ASCII digits only; full-width and other Unicode digits are not dates.
_ISO_UTC_RE = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})(\.[0-9]{3})?Z"
)
_OFFSET_RE = re.compile(r"([+-])([0-9]{2}):?([0-9]{2})")
_TRAILING_OFFSET_RE = re.compile(r"(?<=[0-9])\s*(Z|[+-][0-9]{2}:?[0-9]{2})\Z")
_TRAILING_WORD_RE = re.compile(r"\s+([A-Za-z]{2,4})\Z")
_DATE_TIME_RE = re.compile(
    r"([0-9]{4}-[0-9]{1,2}-[0-9]{1,2}|[0-9]{4}/[0-9]{1,2}/[0-9]{1,2}|[0-9]{1,2}/[0-9]{1,2}/[0-9]{4})"
    r"(?:(?:T|\s+)([\x20-\x7e]+))?"
)
_FRACTION_RE = re.compile(r"([0-9]{2}:[0-9]{2}:[0-9]{2})\.[0-9]+")


@dataclass(frozen=True)
class NormalizedDate:
    success: bool
    iso_string: Optional[str] = None
    was_normalized: Optional[bool] = None
    error: Optional[str] = None


def to_canonical_iso(value: str) -> str:
    """Strip milliseconds from a full ISO UTC string; anything else passes through."""
    if not value or not _ISO_UTC_RE.fullmatch(value):
        return value
    return value[:19] + "Z"


def is_valid_iso_datetime(value: str) -> bool:
    """True iff ``value`` is exactly ``YYYY-MM-DDTHH:MM:SS[.fff]Z`` with in-range parts."""
    if not value:
        return False
    m = _ISO_UTC_RE.fullmatch(value)
    if not m:
        return False
    year, month, day, hour, minute, second = (int(g) for g in m.groups()[:6])
    try:
        datetime(year, month, day, hour, minute, second)
    except ValueError:
        return False
    return True


def _parse_offset(text: str) -> Optional[timezone]:
    m = _OFFSET_RE.fullmatch(text)
    if not m:
        return None
    sign, hours, minutes = m.group(1), int(m.group(2)), int(m.group(3))
    if hours > 23 or minutes > 59:
        return None
    delta = timedelta(hours=hours, minutes=minutes)
    return timezone(-delta if sign == "-" else delta)


@lru_cache(maxsize=128)
def resolve_timezone(name: Optional[str]) -> tzinfo:
    """
    Resolve a timezone name to a tzinfo.

    Accepts IANA names (``Asia/Kuala_Lumpur``), ``UTC``/``Z`` and fixed
    offsets (``+05:30``). Unknown names resolve to UTC.
    """
    if name is None or not name.strip():
        return timezone.utc
    key = name.strip()
    if key.upper() in ("UTC", "Z", "GMT"):
        return timezone.utc
    offset = _parse_offset(key)
    if offset is not None:
        return offset
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.debug("Unknown timezone %r, falling back to UTC", key)
        return timezone.utc


def _split_zone(text: str) -> Tuple[str, Optional[tzinfo], bool]:
    """
    Peel an explicit zone designator off the end of ``text``.

    Returns the remaining text, the designated tzinfo (None when the value
    carries no zone) and False when a designator is present but invalid.
    """
    word = _TRAILING_WORD_RE.search(text)
    if word:
        token = word.group(1).upper()
        if token in ("UTC", "GMT"):
            return text[: word.start()], timezone.utc, True
        if token in TZ_ABBR_OFFSETS:
            return text[: word.start()], _parse_offset(TZ_ABBR_OFFSETS[token]), True

    m = _TRAILING_OFFSET_RE.search(text)
    if m:
        token = m.group(1)
        if token == "Z":
            return text[: m.start()], timezone.utc, True
        offset = _parse_offset(token)
        return text[: m.start()], offset, offset is not None

    return text, None, True


def _parse_date(text: str) -> Optional[date]:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_time(text: str) -> Optional[time]:
    text = _FRACTION_RE.sub(r"\1", text.strip())
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def _parse_wall_clock(text: str) -> Optional[datetime]:
    m = _DATE_TIME_RE.fullmatch(text.strip())
    if not m:
        return None
    day = _parse_date(m.group(1))
    if day is None:
        return None
    if m.group(2) is None:
        return datetime.combine(day, time(0, 0))
    clock = _parse_time(m.group(2))
    if clock is None:
        return None
    return datetime.combine(day, clock)


def normalize_datetime(
    date_str: Optional[str],
    time_str: Optional[str] = None,
    timezone_name: Optional[str] = None,
) -> NormalizedDate:
    """
    Normalize a date (and optional separate time) to canonical UTC.

    The value is read as wall-clock time in ``timezone_name`` unless it
    carries its own designator (``Z``, ``+08:00``, ``EST``...).
    ``was_normalized`` is False only when the input already was the
    canonical output string.
    """
    date_part = (date_str or "").strip()
    if not date_part or PLACEHOLDER_TOKEN.lower() in date_part.lower():
        return NormalizedDate(success=False, error=PLACEHOLDER_ERROR)

    time_part = (time_str or "").strip()
    combined = f"{date_part} {time_part}" if time_part else date_part
    failure = NormalizedDate(success=False, error=f"Invalid date format: {combined}")

    body, explicit_zone, zone_ok = _split_zone(combined)
    if not zone_ok:
        return failure

    local = _parse_wall_clock(body)
    if local is None:
        return failure

    zone = explicit_zone if explicit_zone is not None else resolve_timezone(timezone_name)
    try:
        instant = local.replace(tzinfo=zone).astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return failure

    iso_string = instant.replace(tzinfo=None, microsecond=0).isoformat() + "Z"
    return NormalizedDate(
        success=True,
        iso_string=iso_string,
        was_normalized=iso_string != combined,
    )


def format_instant(moment: datetime) -> str:
    """Render an aware datetime in canonical UTC form."""
    utc = moment.astimezone(timezone.utc).replace(tzinfo=None, microsecond=0)
    return utc.isoformat() + "Z"
