"""
Field coercion helpers shared by source and article normalization.

Remote schemas disagree on types: a title may arrive as a string or as a list
of strings, a rate limit as an int, a float or a bool. These helpers collapse
those variants into one canonical value or ``None``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from dateutil import parser as date_parser

# Two anchors that disagree on every date field; a string parses the same
# against both only when it names a full calendar date.
_ANCHORS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def to_string_value(value: Any) -> Optional[str]:
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    if isinstance(value, (list, tuple)):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item.strip()
    return None


def to_number(value: Any) -> Optional[int]:
    # bool is an int subclass; a stray `true` must not become a rate limit of 1
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value == value:
        return int(value)
    return None


def to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() != "false"
    return None


def to_string_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple, set)):
        return []
    return [item for item in value if isinstance(item, str)]


def to_string_mapping(value: Any) -> Optional[Dict[str, str]]:
    if not isinstance(value, Mapping):
        return None
    return {str(k): str(v) for k, v in value.items() if isinstance(v, (str, int, float))}


def first_present(record: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key that is present and not None."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _parse_calendar_date(raw: str) -> Optional[datetime]:
    try:
        return date_parser.isoparse(raw)
    except (ValueError, OverflowError):
        pass
    try:
        first, second = (date_parser.parse(raw, default=anchor) for anchor in _ANCHORS)
    except (ValueError, OverflowError, TypeError):
        return None
    # "10:30", "Monday" or "March 2024" borrow missing fields from the anchor
    if (first.year, first.month, first.day) != (second.year, second.month, second.day):
        return None
    return first


def to_utc_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an upstream timestamp into an aware UTC datetime.

    Unparsable input yields ``None``; a missing date is valid upstream data.
    Strings without a full calendar date (time-only, weekday-only, month and
    year) are unparsable too, so the result never depends on the clock.
    Naive timestamps are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = to_string_value(value)
        if raw is None:
            return None
        parsed = _parse_calendar_date(raw)
        if parsed is None:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
