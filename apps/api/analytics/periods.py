"""Calendar period resolution for aggregation ranges."""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from analytics.models import DateRange, MetricPeriod
from content_graph.errors import ValidationError


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Periods with a well-defined "previous" equivalent used for growth.
FIXED_PERIODS = frozenset(
    {MetricPeriod.DAY, MetricPeriod.WEEK, MetricPeriod.MONTH, MetricPeriod.QUARTER, MetricPeriod.YEAR}
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _day_start(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _day_end(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999999)


def shift_months(value: datetime, months: int) -> datetime:
    """Move ``value`` by whole months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def resolve_period_range(
    period: MetricPeriod,
    date_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Start and end (inclusive, UTC) for ``period`` around ``now``.

    ``custom`` requires an explicit range. An explicit range also overrides
    any other period.
    """
    period = MetricPeriod(period)
    if date_range is not None:
        start, end = _as_utc(date_range.start), _as_utc(date_range.end)
        if start > end:
            raise ValidationError("Date range start must not be after its end.")
        return start, end
    if period == MetricPeriod.CUSTOM:
        raise ValidationError("A custom period requires an explicit date range.")

    current = _as_utc(now or datetime.now(timezone.utc))
    if period == MetricPeriod.DAY:
        return _day_start(current), _day_end(current)
    if period == MetricPeriod.WEEK:
        start = _day_start(current - timedelta(days=current.weekday()))
        return start, _day_end(start + timedelta(days=6))
    if period == MetricPeriod.MONTH:
        start = _day_start(current.replace(day=1))
        last_day = calendar.monthrange(current.year, current.month)[1]
        return start, _day_end(current.replace(day=last_day))
    if period == MetricPeriod.QUARTER:
        first_month = ((current.month - 1) // 3) * 3 + 1
        start = _day_start(current.replace(month=first_month, day=1))
        end = shift_months(start, 3) - timedelta(microseconds=1)
        return start, end
    if period == MetricPeriod.YEAR:
        start = _day_start(current.replace(month=1, day=1))
        return start, _day_end(current.replace(month=12, day=31))
    return EPOCH, current


def previous_period_range(period: MetricPeriod, start: datetime, end: datetime) -> Optional[Tuple[datetime, datetime]]:
    """The equivalent range one period earlier, or None for non-calendar periods."""
    period = MetricPeriod(period)
    if period not in FIXED_PERIODS:
        return None
    if period == MetricPeriod.DAY:
        return start - timedelta(days=1), end - timedelta(days=1)
    if period == MetricPeriod.WEEK:
        return start - timedelta(weeks=1), end - timedelta(weeks=1)
    months = {MetricPeriod.MONTH: 1, MetricPeriod.QUARTER: 3, MetricPeriod.YEAR: 12}[period]
    previous_start = shift_months(start, -months)
    return previous_start, shift_months(previous_start, months) - timedelta(microseconds=1)
