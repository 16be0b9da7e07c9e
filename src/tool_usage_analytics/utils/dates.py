"""
Calendar helpers shared by the store and the aggregation layers.

All dates are UTC calendar dates rendered as ``YYYY-MM-DD`` strings.
"""

from datetime import date, datetime, timedelta, timezone

DATE_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current time as ISO-8601 with millisecond precision and a Z suffix."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_today() -> str:
    """Today's UTC calendar date."""
    return utc_now().strftime(DATE_FORMAT)


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string."""
    return datetime.strptime(value[:10], DATE_FORMAT).date()


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def shift_date(value: str, days: int) -> str:
    """Move a date string by a number of days (negative goes back)."""
    return format_date(parse_date(value) + timedelta(days=days))


def days_ago(days: int) -> str:
    """UTC date that lies the given number of days before today."""
    return shift_date(utc_today(), -days)


def week_id(value: str) -> str:
    """
    ISO week identifier (``YYYY-Www``) for a date string.

    The date is moved to the Thursday of its week; that Thursday's year owns
    the week, and weeks are counted from the year's first Thursday.
    """
    day = parse_date(value)
    thursday = day + timedelta(days=3 - day.weekday())
    jan4 = date(thursday.year, 1, 4)
    first_thursday = jan4 + timedelta(days=3 - jan4.weekday())
    week = (thursday - first_thursday).days // 7 + 1
    return f"{thursday.year}-W{week:02d}"


def month_id(value: str) -> str:
    """Month identifier (``YYYY-MM``) for a date string."""
    return value[:7]
