"""
Date helpers.

Calendar dates arrive as 'YYYY-MM-DD' strings and are interpreted as UTC
day boundaries, so a payment dated 2025-03-01 is stored at 00:00 UTC
whatever the server timezone.
"""
import re
from datetime import date, datetime, time, timedelta, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.core.exceptions import ValidationError

DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def is_valid_date_string(value) -> bool:
    """True for a well-formed, existing 'YYYY-MM-DD' date."""
    if not isinstance(value, str) or not DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not is_valid_date_string(value):
        raise ValidationError(f'Invalid date {value!r}, expected YYYY-MM-DD')
    return date.fromisoformat(value)


def parse_start_of_day(value) -> datetime:
    """'2025-03-01' -> 2025-03-01 00:00:00 UTC."""
    return datetime.combine(_to_date(value), time.min, tzinfo=dt_timezone.utc)


def parse_end_of_day(value) -> datetime:
    """'2025-03-01' -> 2025-03-01 23:59:59.999999 UTC."""
    return datetime.combine(_to_date(value), time.max, tzinfo=dt_timezone.utc)


def prepare_date_range(start=None, end=None):
    """
    Inclusive datetime range for filtering.

    Either bound may be omitted. Raises ValidationError when start > end.
    """
    start_dt = parse_start_of_day(start) if start else None
    end_dt = parse_end_of_day(end) if end else None
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError('Start date must be on or before end date')
    return start_dt, end_dt


def parse_datetime_value(value, field='date') -> datetime:
    """
    Accept a datetime, an ISO-8601 datetime string or a 'YYYY-MM-DD' date.

    Naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return parse_start_of_day(value)
    elif isinstance(value, str) and is_valid_date_string(value):
        return parse_start_of_day(value)
    else:
        try:
            parsed = parse_datetime(value) if isinstance(value, str) else None
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(f'Invalid {field} {value!r}')
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def add_days(value, days: int):
    return value + timedelta(days=days)
