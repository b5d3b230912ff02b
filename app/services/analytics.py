from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session as OrmSession

from app.db_models import Sale
from app.models import SalesByDayOut, SalesByDayPoint
from app.services.periods import get_report_tz, to_report_local, to_utc_naive
from app.services.report_exports import quantize_money

DEFAULT_DAYS = 7
MAX_DAYS = 90


def build_sales_by_day(
    db: OrmSession,
    days: int = DEFAULT_DAYS,
    *,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> SalesByDayOut:
    """
    Daily revenue / orders / units for the last ``days`` calendar days,
    including today. Days without sales are present with zeros.
    """
    if days < 1 or days > MAX_DAYS:
        days = DEFAULT_DAYS

    tz = tz or get_report_tz()
    local_now = to_report_local(now or datetime.now(timezone.utc), tz)
    first_day = local_now.date() - timedelta(days=days - 1)

    local_start = datetime(first_day.year, first_day.month, first_day.day, tzinfo=tz)
    local_end = datetime(
        local_now.year, local_now.month, local_now.day, 23, 59, 59, 999999, tzinfo=tz
    )

    sales = (
        db.query(Sale.sale_date, Sale.quantity, Sale.price)
        .filter(
            Sale.sale_date >= to_utc_naive(local_start),
            Sale.sale_date <= to_utc_naive(local_end),
        )
        .all()
    )

    buckets: Dict[str, Dict[str, object]] = {}
    for offset in range(days):
        key = (first_day + timedelta(days=offset)).isoformat()
        buckets[key] = {"revenue": Decimal("0"), "orders": 0, "quantity": 0}

    for sale_date, quantity, price in sales:
        key = sale_date.replace(tzinfo=timezone.utc).astimezone(tz).date().isoformat()
        bucket = buckets.get(key)
        if bucket is None:
            continue
        bucket["revenue"] += Decimal(str(price)) * quantity
        bucket["orders"] += 1
        bucket["quantity"] += quantity

    points = [
        SalesByDayPoint(
            date=key,
            total_revenue=float(quantize_money(bucket["revenue"])),
            total_orders=bucket["orders"],
            total_quantity=bucket["quantity"],
        )
        for key, bucket in buckets.items()
    ]

    return SalesByDayOut(
        **{"from": local_start, "to": local_end},
        days=days,
        points=points,
    )
