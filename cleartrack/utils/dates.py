"""Date handling for version strings.

A version is the local time of a change in the form ``yyyyMMdd.HHmmss``.
This is also the form cleartool prints for the ``%Nd`` format directive.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional


#: The format of a version string.
DATE_FORMAT = '%Y%m%d.%H%M%S'

#: Month names accepted by cleartool's ``-since`` option.
#:
#: These are spelled out rather than taken from the locale, which
#: cleartool doesn't honor.
_MONTHS = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
           'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')

#: The gap between the latest change and the version reported for it.
VERSION_OFFSET = timedelta(seconds=1)


def parse_date(
    value: str,
) -> datetime:
    """Parse a version string into a date.

    Args:
        value (str):
            The version string.

    Returns:
        datetime.datetime:
        The parsed date.

    Raises:
        ValueError:
            The string is not a valid version.
    """
    return datetime.strptime(value.strip(), DATE_FORMAT)


def format_date(
    value: datetime,
) -> str:
    """Format a date as a version string.

    Args:
        value (datetime.datetime):
            The date to format.

    Returns:
        str:
        The version string.
    """
    return value.strftime(DATE_FORMAT)


def format_since(
    value: datetime,
) -> str:
    """Format a date for cleartool's ``-since`` option."""
    return '%02d-%s-%04d.%02d:%02d:%02d' % (
        value.day, _MONTHS[value.month - 1], value.year,
        value.hour, value.minute, value.second)


def parse_cleartool_date(
    value: str,
    now: Optional[datetime] = None,
) -> datetime:
    """Parse a date written the way cleartool accepts it.

    This understands ``now``, ``today``, ``yesterday``,
    ``dd-Mon-yyyy[.HH:MM[:SS]]``, ``dd-Mon[.HH:MM[:SS]]`` (in the current
    year) and version strings.

    Args:
        value (str):
            The date to parse.

        now (datetime.datetime, optional):
            The current time, used for relative dates.

    Returns:
        datetime.datetime:
        The parsed date.

    Raises:
        ValueError:
            The date couldn't be parsed.
    """
    if now is None:
        now = datetime.now()

    value = value.strip()
    lower = value.lower()

    if lower == 'now':
        return now
    elif lower == 'today':
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif lower == 'yesterday':
        return (now.replace(hour=0, minute=0, second=0, microsecond=0) -
                timedelta(days=1))

    try:
        return parse_date(value)
    except ValueError:
        pass

    date_part, _, time_part = value.partition('.')
    date_fields = date_part.split('-')

    if len(date_fields) not in (2, 3):
        raise ValueError('"%s" is not a valid date' % value)

    try:
        month = [
            name.lower()
            for name in _MONTHS
        ].index(date_fields[1][:3].lower()) + 1
        day = int(date_fields[0])
        year = int(date_fields[2]) if len(date_fields) == 3 else now.year
    except ValueError:
        raise ValueError('"%s" is not a valid date' % value)

    if year < 100:
        year += 2000

    hour = minute = second = 0

    if time_part:
        time_fields = time_part.split(':')

        try:
            hour = int(time_fields[0])
            minute = int(time_fields[1]) if len(time_fields) > 1 else 0
            second = int(time_fields[2]) if len(time_fields) > 2 else 0
        except ValueError:
            raise ValueError('"%s" is not a valid date' % value)

    return datetime(year, month, day, hour, minute, second)


def version_after(
    value: datetime,
) -> str:
    """Return the version string reported for a change made at a date.

    Args:
        value (datetime.datetime):
            The date of the change.

    Returns:
        str:
        The version string, one second after the change.
    """
    return format_date(value + VERSION_OFFSET)


def current_version(
    now: Optional[datetime] = None,
) -> str:
    """Return the version string for the current moment."""
    return format_date(now or datetime.now())


def compare_versions(
    version1: str,
    version2: str,
) -> int:
    """Compare two version strings by the dates they represent.

    Args:
        version1 (str):
            The first version.

        version2 (str):
            The second version.

    Returns:
        int:
        A negative number if ``version1`` is older, ``0`` if equal, or a
        positive number if it's newer.
    """
    date1 = parse_date(version1)
    date2 = parse_date(version2)

    return (date1 > date2) - (date1 < date2)
