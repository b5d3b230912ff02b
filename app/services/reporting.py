from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session as OrmSession

from app.db_models import Report, Sale
from app.models import SalesReportSummary
from app.services.periods import PeriodRange, get_report_tz, resolve_range
from app.services.report_exports import quantize_money, sales_rows_to_csv

logger = logging.getLogger(__name__)


class ReportNotFoundError(Exception):
    """Raised when a report definition is missing or switched off."""


class SaleRow:
    """A single line of the detail table."""

    def __init__(
        self,
        sale_date: datetime,
        customer: str,
        product: str,
        quantity: int,
        price,
    ) -> None:
        self.sale_date = sale_date
        self.customer = customer
        self.product = product
        self.quantity = int(quantity)
        self.price = price if isinstance(price, Decimal) else Decimal(str(price))

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def from_sale(cls, sale: Sale) -> "SaleRow":
        return cls(
            sale_date=sale.sale_date,
            customer=sale.customer,
            product=sale.product,
            quantity=sale.quantity,
            price=sale.price,
        )


class SalesReport:
    """Container for one freshly generated sales report."""

    def __init__(
        self,
        period: PeriodRange,
        summary: SalesReportSummary,
        rows: List[SaleRow],
        csv: str,
    ) -> None:
        self.period = period
        self.summary = summary
        self.rows = rows
        self.csv = csv


def build_summary_from_rows(rows: Iterable[SaleRow]) -> SalesReportSummary:
    """
    Aggregate revenue, order count, units and average check.

    Money is summed as Decimal and rounded to cents at the end; an empty set of
    rows yields zeros rather than a division error.
    """
    total_revenue = Decimal("0")
    total_orders = 0
    total_quantity = 0

    for row in rows:
        total_revenue += row.line_total
        total_quantity += row.quantity
        total_orders += 1

    average_check = (
        quantize_money(total_revenue / total_orders) if total_orders else Decimal("0")
    )

    return SalesReportSummary(
        total_revenue=float(quantize_money(total_revenue)),
        total_orders=total_orders,
        total_quantity=total_quantity,
        average_check=float(average_check),
    )


def fetch_sales(db: OrmSession, period: PeriodRange) -> List[SaleRow]:
    utc_start, utc_end = period.to_utc_naive()

    sales = (
        db.query(Sale)
        .filter(Sale.sale_date >= utc_start, Sale.sale_date <= utc_end)
        .order_by(Sale.sale_date.asc(), Sale.id.asc())
        .all()
    )
    return [SaleRow.from_sale(s) for s in sales]


def generate_sales_report(
    db: OrmSession,
    period_key: str,
    *,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> SalesReport:
    """
    Build a sales report for the given period key: summary metrics plus the
    semicolon-delimited detail table. Storage errors propagate untouched.
    """
    tz = tz or get_report_tz()
    period = resolve_range(period_key, now, tz=tz)

    rows = fetch_sales(db, period)
    summary = build_summary_from_rows(rows)

    logger.debug(
        "Generated %s report: %d orders in %r", period_key, summary.total_orders, period
    )

    return SalesReport(
        period=period,
        summary=summary,
        rows=rows,
        csv=sales_rows_to_csv(rows, tz),
    )


def get_active_report_or_raise(db: OrmSession, report_id: int) -> Report:
    report = db.query(Report).filter(Report.id == report_id).first()
    if not report or not report.is_active:
        raise ReportNotFoundError(f"Report {report_id} not found or inactive")
    return report
