""" Value kinds of schemaless documents

Documents are plain dicts loaded from a document store.
Their values are one of: null, boolean, number, string, timestamp, date, list, or a nested mapping.

A *timestamp* is the store's own date type, serialized as a mapping:

    {'_seconds': 1700000000, '_nanoseconds': 0}  # or: {'seconds': ..., 'nanoseconds': ...}

It is a distinct kind: it's never treated as a mapping, a number, or a string.
"""

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from dateutil.parser import isoparse


class ValueKind(Enum):
    """ The closed set of value kinds a document can contain """
    NULL = 'null'
    BOOL = 'bool'
    NUMBER = 'number'
    STRING = 'string'
    TIMESTAMP = 'timestamp'
    DATE = 'date'
    LIST = 'list'
    MAP = 'map'


def is_timestamp(value) -> bool:
    """ Is the value a store timestamp: a mapping with (_)seconds and (_)nanoseconds? """
    return (
        isinstance(value, Mapping) and
        ('_seconds' in value or 'seconds' in value) and
        ('_nanoseconds' in value or 'nanoseconds' in value)
    )


def is_number(value) -> bool:
    """ Is the value a real number? (booleans are not) """
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def value_kind(value) -> ValueKind:
    """ Get the kind of a document value

    :raises TypeError: the value is not something a document can contain
    """
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if is_number(value):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (datetime, date)):
        return ValueKind.DATE
    if is_timestamp(value):
        return ValueKind.TIMESTAMP
    if isinstance(value, Mapping):
        return ValueKind.MAP
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    raise TypeError('Unsupported document value: {!r}'.format(type(value)))


def is_scalar(value) -> bool:
    """ Is the value a primitive that can be searched: string, number, or boolean """
    return isinstance(value, (str, int, float))


def timestamp_to_datetime(value) -> Optional[datetime]:
    """ Convert a store timestamp into an aware UTC datetime """
    if not is_timestamp(value):
        return None
    seconds = value.get('_seconds') or value.get('seconds') or 0
    nanoseconds = value.get('_nanoseconds') or value.get('nanoseconds') or 0
    millis = seconds * 1000 + nanoseconds / 1000000
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def to_number(value) -> Optional[float]:
    """ Coerce a number, or a numeric string, into a float. Anything else gives None. """
    if is_number(value):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            number = float(value)
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def parse_date_string(value: str) -> Optional[datetime]:
    """ Parse an ISO 8601 date string.

        Numeric strings are never dates: '2024' is a number, not a year.
    """
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or to_number(value) is not None:
        return None
    try:
        dt = isoparse(value)
    except (ValueError, OverflowError):
        return None
    return _aware(dt)


def to_datetime(value) -> Optional[datetime]:
    """ Get a datetime from a native date, a store timestamp, or an ISO date string """
    if isinstance(value, datetime):
        return _aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if is_timestamp(value):
        return timestamp_to_datetime(value)
    if isinstance(value, str):
        return parse_date_string(value)
    return None


def to_millis(value: datetime) -> float:
    """ Epoch milliseconds of a datetime """
    return _aware(value).timestamp() * 1000


def to_text(value: Any) -> str:
    """ Stringify a document value the way it's shown to API users """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ','.join(to_text(v) for v in value)
    return str(value)


def _aware(dt: datetime) -> datetime:
    # Naive datetimes are UTC
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)
