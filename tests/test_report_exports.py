from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from app.models import SalesReportSummary
from app.services.report_exports import (
    build_csv_with_summary,
    format_amount,
    quantize_money,
    sales_rows_to_csv,
)
from app.services.reporting import SaleRow


def test_detail_rows_use_semicolons_and_decimal_commas():
    rows = [
        SaleRow(datetime(2024, 3, 15, 9, 30), "Romashka LLC", "Laptop X1", 2, "60000.00"),
        SaleRow(datetime(2024, 3, 15, 10, 0), "Vector LLC", "SSD 1TB", 1, Decimal("9000.5")),
    ]

    csv_text = sales_rows_to_csv(rows, ZoneInfo("UTC"))

    assert csv_text == (
        "date;customer;product;quantity;price;sum\n"
        "2024-03-15;Romashka LLC;Laptop X1;2;60000,00;120000,00\n"
        "2024-03-15;Vector LLC;SSD 1TB;1;9000,50;9000,50\n"
    )


def test_fields_containing_the_delimiter_are_quoted():
    rows = [SaleRow(datetime(2024, 3, 15), "Petrov; Sons", 'Monitor 24"', 1, "1")]

    csv_text = sales_rows_to_csv(rows, ZoneInfo("UTC"))

    assert '"Petrov; Sons"' in csv_text
    assert '"Monitor 24"""' in csv_text


def test_summary_block_precedes_detail_table():
    summary = SalesReportSummary(
        total_revenue=3100.0, total_orders=3, total_quantity=6, average_check=1033.33
    )
    detail = "date;customer;product;quantity;price;sum\n"

    text = build_csv_with_summary("Daily sales report", summary, detail)

    assert text == (
        "Report;Daily sales report\n"
        "Revenue;3100.00\n"
        "Orders;3\n"
        "Units;6\n"
        "Average check;1033.33\n"
        "\n"
        "date;customer;product;quantity;price;sum\n"
    )


def test_money_rounds_half_up():
    assert quantize_money(Decimal("2.345")) == Decimal("2.35")
    assert quantize_money(0.1) == Decimal("0.10")
    assert format_amount(Decimal("1033.335")) == "1033,34"
