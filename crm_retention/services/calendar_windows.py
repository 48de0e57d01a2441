"""
Calendar helpers shared by the scoring, cohort and funnel services.

All windows are anchored to an explicit as_of timestamp instead of the wall
clock, and calendar days/months are evaluated in the report time zone
(settings.report_timezone).
"""

from datetime import date, datetime, time, tzinfo
from typing import Optional


def resolve_as_of(as_of: Optional[datetime], tz: tzinfo) -> datetime:
    """
    Normalize the reference timestamp to the report time zone.

    None means "now". Naive timestamps are taken to already be report-zone
    local time.
    """
    if as_of is None:
        return datetime.now(tz)
    if as_of.tzinfo is None:
        return as_of.replace(tzinfo=tz)
    return as_of.astimezone(tz)


def start_of_day(moment: datetime) -> datetime:
    """Midnight of the moment's calendar day, in the moment's own zone."""
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def add_months(day: date, months: int) -> date:
    """First day of the month `months` away from day's month (negative goes back)."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def end_of_month(day: date) -> date:
    """Last calendar day of day's month."""
    return date.fromordinal(add_months(day, 1).toordinal() - 1)


def month_key(day: date) -> str:
    """'yyyy-mm' key of a date or datetime."""
    return f"{day.year:04d}-{day.month:02d}"


def month_label(day: date) -> str:
    """Short display label, e.g. 'Jan/26'."""
    return day.strftime('%b/%y')
