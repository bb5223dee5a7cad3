"""
Calendar helpers for monthly reports.

Month and weekday names are looked up from an explicit ``locale`` argument
instead of process-wide locale state, so reports for different employees can
be rendered concurrently in different languages.
"""

from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from presencetrack.core.config import settings

DEFAULT_LOCALE = "fr"

# Monday-first, matching date.weekday()
_WEEKDAY_NAMES: dict[str, tuple[str, ...]] = {
    "fr": ("lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"),
    "en": ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"),
}

_MONTH_NAMES: dict[str, tuple[str, ...]] = {
    "fr": (
        "janvier", "février", "mars", "avril", "mai", "juin",
        "juillet", "août", "septembre", "octobre", "novembre", "décembre",
    ),
    "en": (
        "january", "february", "march", "april", "may", "june",
        "july", "august", "september", "october", "november", "december",
    ),
}


def _names_for(table: dict[str, tuple[str, ...]], locale: str) -> tuple[str, ...]:
    # "fr_FR" and "fr-TN" fall back to "fr"
    key = locale.lower().replace("-", "_").split("_")[0]
    try:
        return table[key]
    except KeyError:
        raise ValueError(f"Unsupported locale '{locale}'") from None


def capitalize_first(value: str) -> str:
    if not value:
        return value
    return value[0].upper() + value[1:]


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of the month, both inclusive."""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the week containing ``day``."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def weekday_name(day: date, locale: str = DEFAULT_LOCALE) -> str:
    return _names_for(_WEEKDAY_NAMES, locale)[day.weekday()]


def month_name(month: int, locale: str = DEFAULT_LOCALE) -> str:
    return _names_for(_MONTH_NAMES, locale)[month - 1]


def period_label(year: int, month: int, locale: str = DEFAULT_LOCALE) -> str:
    """Capitalized "Month Year", e.g. ``Février 2026``."""
    return capitalize_first(f"{month_name(month, locale)} {year}")


@lru_cache
def organization_timezone() -> ZoneInfo:
    return ZoneInfo(settings.ORGANIZATION_TIMEZONE)


def to_local(value: datetime) -> datetime:
    """Convert an aware timestamp to the organization timezone.

    Naive values are assumed to be UTC, which is how asyncpg hands back
    ``timestamptz`` columns once normalised.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(organization_timezone())


def local_now() -> datetime:
    return datetime.now(timezone.utc).astimezone(organization_timezone())


def local_today() -> date:
    return local_now().date()


def parse_hhmm(value: str) -> time:
    hours, minutes = value.strip().split(":", 1)
    return time(int(hours), int(minutes))


def format_hhmm(value: datetime) -> str:
    return to_local(value).strftime("%H:%M")
