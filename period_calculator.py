"""
Budget period calculations.

Maps a start date and a period type to the inclusive end date of the period,
and computes the period that follows an elapsed one. All arithmetic works on
naive calendar dates; nothing here is timezone-aware.
"""

import calendar
import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Union

from exceptions import InvalidPeriodTypeError

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"


class PeriodType(enum.Enum):
    """Enumeration of supported budget period types."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


# Inclusive window length minus one, for the fixed-length period types
_FIXED_PERIOD_OFFSETS = {
    PeriodType.WEEKLY: timedelta(days=6),
    PeriodType.BIWEEKLY: timedelta(days=13),
}


@dataclass(frozen=True)
class Period:
    """
    Inclusive date range during which spending accrues against a budget.

    Attributes:
        start_date: First day of the period
        end_date: Last day of the period
    """
    start_date: date
    end_date: date

    def contains(self, day: date) -> bool:
        """Return True if the given day falls inside the period."""
        return self.start_date <= day <= self.end_date


def coerce_period_type(period_type: Union[PeriodType, str]) -> PeriodType:
    """
    Convert a raw period type value into a PeriodType.

    Args:
        period_type: PeriodType member or its string value

    Returns:
        Matching PeriodType

    Raises:
        InvalidPeriodTypeError: If the value is not a supported period type
    """
    if isinstance(period_type, PeriodType):
        return period_type
    try:
        return PeriodType(str(period_type).strip().lower())
    except ValueError as e:
        raise InvalidPeriodTypeError(
            f"Invalid period type: {period_type}",
            details={"period_type": period_type, "allowed": [p.value for p in PeriodType]},
            original_error=e
        )


def parse_date(value: Union[date, str]) -> date:
    """
    Parse a YYYY-MM-DD string into a calendar date.

    datetime values are truncated to their date component without any
    timezone conversion.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise TypeError(f"Expected a date or YYYY-MM-DD string, got {type(value).__name__}")
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


def format_date(value: date) -> str:
    """Format a calendar date as YYYY-MM-DD."""
    return value.strftime(DATE_FORMAT)


def end_date_of(start_date: Union[date, str], period_type: Union[PeriodType, str]) -> date:
    """
    Compute the inclusive end date of a period.

    Args:
        start_date: First day of the period
        period_type: weekly (7 days), biweekly (14 days) or monthly
            (through the last day of the start date's month)

    Returns:
        Last day of the period

    Raises:
        InvalidPeriodTypeError: If period_type is not supported
    """
    start = parse_date(start_date)
    kind = coerce_period_type(period_type)

    if kind is PeriodType.MONTHLY:
        last_day = calendar.monthrange(start.year, start.month)[1]
        return start.replace(day=last_day)
    return start + _FIXED_PERIOD_OFFSETS[kind]


def next_period_after_expiry(old_end_date: Union[date, str], period_type: Union[PeriodType, str]) -> Period:
    """
    Compute the period that immediately follows an elapsed one.

    Args:
        old_end_date: Last day of the elapsed period
        period_type: Period type of the budget

    Returns:
        Period starting the day after old_end_date
    """
    new_start = parse_date(old_end_date) + timedelta(days=1)
    return Period(new_start, end_date_of(new_start, period_type))


def iter_periods_until(
    old_end_date: Union[date, str],
    period_type: Union[PeriodType, str],
    today: date
) -> Iterator[Period]:
    """
    Yield consecutive periods after old_end_date until one reaches today.

    Each yielded period starts the day after the previous one ends. The
    last period yielded is the first whose end date is on or after today.
    Nothing is yielded if old_end_date is already on or after today.
    """
    kind = coerce_period_type(period_type)
    current_end = parse_date(old_end_date)
    while current_end < today:
        period = next_period_after_expiry(current_end, kind)
        yield period
        current_end = period.end_date
