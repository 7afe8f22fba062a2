"""Rolling realized P&L series.

Two steps, kept separate so account-level series can merge buckets first:

1. Bucket realized amounts by the UTC calendar day of their close.
2. Walk every calendar day (or month) from a window start to today,
   adding each bucket (0 if empty) to a running total.

Summing per-portfolio buckets and then walking is additive; summing
per-portfolio cumulative series is not once closes fall on different days.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from wheelbook.services.metrics.models import PnLSeries, SeriesPoint

ZERO = Decimal("0")

DayBuckets = dict[date, Decimal]


def utc_day(moment: datetime) -> date:
    """Calendar day of a timestamp in UTC (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(timezone.utc).date()


def bucket_by_day(entries: Iterable[tuple[datetime, Decimal]]) -> DayBuckets:
    """Sum realized amounts per UTC close day."""
    buckets: DayBuckets = {}
    for closed_at, amount in entries:
        day = utc_day(closed_at)
        buckets[day] = buckets.get(day, ZERO) + amount
    return buckets


def merge_buckets(bucket_maps: Iterable[Mapping[date, Decimal]]) -> DayBuckets:
    merged: DayBuckets = {}
    for buckets in bucket_maps:
        for day, amount in buckets.items():
            merged[day] = merged.get(day, ZERO) + amount
    return merged


def month_start(today: date) -> date:
    return today.replace(day=1)


def year_start(today: date) -> date:
    return date(today.year, 1, 1)


def trailing_start(today: date, days: int) -> date:
    """First day of a window of `days` days ending today (inclusive)."""
    return today - timedelta(days=max(days, 1) - 1)


def window_total(buckets: Mapping[date, Decimal], start: date, end: date) -> Decimal:
    """Realized amount closed within [start, end] (days, inclusive)."""
    return sum((amount for day, amount in buckets.items() if start <= day <= end), start=ZERO)


def daily_series(buckets: Mapping[date, Decimal], start: date, end: date) -> PnLSeries:
    """
    Cumulative daily series with one point per calendar day in [start, end].

    Example:
        >>> s = daily_series({date(2026, 3, 2): Decimal("50")}, date(2026, 3, 1), date(2026, 3, 3))
        >>> [p.value for p in s.points]
        [Decimal('0'), Decimal('50'), Decimal('50')]
    """
    points: list[SeriesPoint] = []
    running = ZERO
    day = start
    while day <= end:
        change = buckets.get(day, ZERO)
        running += change
        points.append(SeriesPoint(key=day.isoformat(), period_start=day, change=change, value=running))
        day += timedelta(days=1)
    return PnLSeries(granularity="day", start=start, end=end, points=points)


def monthly_series(buckets: Mapping[date, Decimal], start: date, end: date) -> PnLSeries:
    """
    Cumulative monthly series with one point per calendar month from start's
    month through end's month. Only days within [start, end] are counted.
    """
    by_month: dict[tuple[int, int], Decimal] = {}
    for day, amount in buckets.items():
        if start <= day <= end:
            key = (day.year, day.month)
            by_month[key] = by_month.get(key, ZERO) + amount

    points: list[SeriesPoint] = []
    running = ZERO
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        change = by_month.get((year, month), ZERO)
        running += change
        points.append(
            SeriesPoint(key=f"{year:04d}-{month:02d}", period_start=date(year, month, 1), change=change, value=running)
        )
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return PnLSeries(granularity="month", start=start, end=end, points=points)


def rolling_series(buckets: Mapping[date, Decimal], today: date, trailing_days: int) -> tuple[PnLSeries, PnLSeries, PnLSeries]:
    """Month-to-date daily, year-to-date monthly and trailing daily series."""
    return (
        daily_series(buckets, month_start(today), today),
        monthly_series(buckets, year_start(today), today),
        daily_series(buckets, trailing_start(today, trailing_days), today),
    )
