from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import settings

PERIOD_KEYS = ("today", "yesterday", "last7days", "last30days")

# Report definitions store a period type; the generator works with period keys.
_PERIOD_TYPE_TO_KEY = {
    "DAY": "today",
    "WEEK": "last7days",
    "MONTH": "last30days",
}


class PeriodRange:
    """Inclusive [start, end] window, both bounds aware in the report timezone."""

    def __init__(self, start: datetime, end: datetime) -> None:
        self.start = start
        self.end = end

    def to_utc_naive(self) -> tuple[datetime, datetime]:
        """Bounds converted for querying naive-UTC columns."""
        return to_utc_naive(self.start), to_utc_naive(self.end)

    def __repr__(self) -> str:
        return f"PeriodRange(start={self.start.isoformat()}, end={self.end.isoformat()})"


def get_report_tz() -> ZoneInfo:
    """
    Return the configured report timezone (IANA name) or UTC.
    """
    try:
        return ZoneInfo(settings.REPORT_TIMEZONE or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def to_report_local(now: datetime, tz: ZoneInfo) -> datetime:
    # Naive values are taken to already be wall-clock time in the report zone
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _start_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def _end_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def resolve_range(
    period_key: str,
    now: Optional[datetime] = None,
    *,
    tz: Optional[ZoneInfo] = None,
) -> PeriodRange:
    """
    Map a period key (today / yesterday / last7days / last30days) to an
    inclusive date range around ``now``.

    Multi-day windows include the current day, so ``last7days`` covers the six
    previous calendar days plus today. Unknown keys behave like ``today``.
    """
    tz = tz or get_report_tz()
    local_now = to_report_local(now or datetime.now(timezone.utc), tz)
    today = local_now.date()

    if period_key == "yesterday":
        first_day = last_day = today - timedelta(days=1)
    elif period_key == "last7days":
        first_day, last_day = today - timedelta(days=6), today
    elif period_key == "last30days":
        first_day, last_day = today - timedelta(days=29), today
    else:
        first_day = last_day = today

    return PeriodRange(_start_of_day(first_day, tz), _end_of_day(last_day, tz))


def period_key_for_type(period_type: Optional[str]) -> str:
    return _PERIOD_TYPE_TO_KEY.get(period_type or "", "today")
