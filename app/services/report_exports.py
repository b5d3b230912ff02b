from __future__ import annotations

import csv
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from io import StringIO
from typing import TYPE_CHECKING, Iterable
from zoneinfo import ZoneInfo

from app.models import SalesReportSummary

if TYPE_CHECKING:
    from app.services.reporting import SaleRow

CSV_DELIMITER = ";"

CSV_HEADERS = [
    "date",
    "customer",
    "product",
    "quantity",
    "price",
    "sum",
]

CENT = Decimal("0.01")


def quantize_money(value) -> Decimal:
    """Round a money amount to cents, halves away from zero."""
    if not isinstance(value, Decimal):
        # str() keeps floats like 0.1 from dragging binary noise along
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value) -> str:
    # Spreadsheet imports expect a decimal comma in the detail table
    return f"{quantize_money(value):.2f}".replace(".", ",")


def _local_date(sale_date: datetime, tz: ZoneInfo) -> str:
    # DB timestamps are naive UTC
    if sale_date.tzinfo is None:
        sale_date = sale_date.replace(tzinfo=timezone.utc)
    return sale_date.astimezone(tz).date().isoformat()


def _sale_row(row: "SaleRow", tz: ZoneInfo) -> list[str | int]:
    return [
        _local_date(row.sale_date, tz),
        row.customer,
        row.product,
        row.quantity,
        format_amount(row.price),
        format_amount(row.line_total),
    ]


def sales_rows_to_csv(rows: Iterable["SaleRow"], tz: ZoneInfo) -> str:
    """Render sale rows into the semicolon-delimited detail table."""

    buffer = StringIO()
    writer = csv.writer(buffer, delimiter=CSV_DELIMITER, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for row in rows:
        writer.writerow(_sale_row(row, tz))
    return buffer.getvalue()


def build_csv_with_summary(
    report_name: str,
    summary: SalesReportSummary,
    detail_csv: str,
) -> str:
    """
    Prefix the detail table with a short summary block and a blank line so the
    file reads well when opened in a spreadsheet.
    """

    summary_lines = [
        f"Report;{report_name}",
        f"Revenue;{summary.total_revenue:.2f}",
        f"Orders;{summary.total_orders}",
        f"Units;{summary.total_quantity}",
        f"Average check;{summary.average_check:.2f}",
        "",
    ]

    return "\n".join(summary_lines) + "\n" + detail_csv
