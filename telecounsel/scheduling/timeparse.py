import re
from datetime import datetime, time, timezone

from telecounsel.core.errors import InvalidInput

HHMM_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a stored naive timestamp so it serialises with an offset."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _parse_iso(text: str) -> datetime:
    if text.endswith(('Z', 'z')):
        text = f'{text[:-1]}+00:00'
    return datetime.fromisoformat(text)


def parse_timestamp(value: str | datetime | None, label: str) -> datetime:
    """Parse an ISO-8601 timestamp into a naive UTC datetime.

    Naive input is taken to already be UTC.
    """
    if isinstance(value, datetime):
        return to_utc_naive(value)

    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f'{label} is required')

    try:
        parsed = _parse_iso(value.strip())
    except ValueError as exc:
        raise InvalidInput(f'Invalid {label}, expected ISO datetime') from exc

    return to_utc_naive(parsed)


def parse_time_of_day(value: str | time | datetime | None, label: str) -> time:
    """Parse "HH:MM" (24-hour) or a full ISO timestamp into a UTC time of day.

    The date part of a timestamp is discarded.
    """
    if isinstance(value, datetime):
        return to_utc_naive(value).time()

    if isinstance(value, time):
        return value.replace(tzinfo=None)

    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f'{label} is required')

    text = value.strip()
    match = HHMM_PATTERN.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise InvalidInput(f'Invalid {label}, expected HH:MM')
        return time(hour, minute)

    try:
        parsed = _parse_iso(text)
    except ValueError as exc:
        raise InvalidInput(f'Invalid {label}, expected HH:MM or ISO datetime') from exc

    return to_utc_naive(parsed).time()


def sunday_based_weekday(value: datetime) -> int:
    return value.isoweekday() % 7
