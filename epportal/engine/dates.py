"""
Date Normalization
Converts between the store's display strings ("DD/MM/YYYY HH:mm"), its raw
ISO 8601 values, and timezone-aware datetimes.

Display strings carry no offset; they are read as wall-clock time in the
display timezone (Config.TIMEZONE). All parsed values are aware datetimes, so
comparisons and arithmetic are on absolute instants.
"""

import logging
import re
from datetime import date, datetime, timezone, tzinfo
from functools import lru_cache
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'Europe/Zurich'
DISPLAY_FORMAT = '%d/%m/%Y %H:%M'
DATE_ONLY_FORMAT = '%Y-%m-%d'

# Day first, explicit field order: "16/10/2027 21:00", "5/10/2027 00:00", "5/10/2027"
_DISPLAY_RE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})(?:\s+(\d{1,2}):(\d{2}))?')

TzLike = Union[str, tzinfo, None]


@lru_cache(maxsize=16)
def _zone_by_name(name: str) -> tzinfo:
    return ZoneInfo(name)


def resolve_timezone(tz: TzLike = None) -> tzinfo:
    """Accept a zone name, a tzinfo, or None (the default display zone)."""
    if tz is None:
        return _zone_by_name(DEFAULT_TIMEZONE)
    if isinstance(tz, str):
        return _zone_by_name(tz)
    return tz


def parse_flexible(value: Any, tz: TzLike = None) -> Optional[datetime]:
    """
    Parse a store date value into an aware datetime.

    Accepts display strings (DD/MM/YYYY [HH:mm]), ISO 8601 strings, date and
    datetime objects. Naive values are placed in the display timezone.
    Returns None for empty or unparseable input; never raises.
    """
    if value is None or value == '':
        return None

    zone = resolve_timezone(tz)

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=zone)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=zone)
    if not isinstance(value, str):
        return None

    text = value.strip()
    match = _DISPLAY_RE.match(text)
    if match:
        day, month, year, hours, minutes = match.groups()
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hours or 0), int(minutes or 0),
                tzinfo=zone,
            )
        except ValueError:
            logger.debug(f"parse_flexible | out-of-range display date {text!r}, trying ISO")

    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"parse_flexible | unparseable value {text!r}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=zone)


def format_datetime(value: Any, tz: TzLike = None) -> str:
    """Render as "DD/MM/YYYY HH:mm" in the display timezone; '' when empty or invalid."""
    instant = parse_flexible(value, tz)
    if instant is None:
        return ''
    return instant.astimezone(resolve_timezone(tz)).strftime(DISPLAY_FORMAT)


def format_date_only(value: Any, tz: TzLike = None) -> str:
    """Render as "YYYY-MM-DD" for date-only inputs; '' when empty or invalid."""
    instant = parse_flexible(value, tz)
    if instant is None:
        return ''
    return instant.astimezone(resolve_timezone(tz)).strftime(DATE_ONLY_FORMAT)


def to_store_value(value: Any, tz: TzLike = None) -> Optional[str]:
    """ISO 8601 UTC string for writing a datetime column; None when empty."""
    instant = parse_flexible(value, tz)
    if instant is None:
        return None
    return instant.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z')
