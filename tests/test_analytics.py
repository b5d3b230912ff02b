from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from app.services.analytics import build_sales_by_day
from tests.helpers import add_sale, make_db_session

NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


def test_buckets_cover_every_day_including_today():
    db = make_db_session()
    add_sale(db, datetime(2024, 3, 9, 10, 0), 2, "100.00")
    add_sale(db, datetime(2024, 3, 9, 11, 0), 1, "0.50")
    add_sale(db, datetime(2024, 3, 8, 23, 0), 1, "999.00")

    result = build_sales_by_day(db, 7, now=NOW, tz=ZoneInfo("UTC"))

    assert result.days == 7
    assert [p.date for p in result.points][0] == "2024-03-09"
    assert [p.date for p in result.points][-1] == "2024-03-15"
    first = result.points[0]
    assert (first.total_revenue, first.total_orders, first.total_quantity) == (200.5, 2, 3)
    assert sum(p.total_orders for p in result.points) == 2

    db.close()


def test_out_of_range_days_fall_back_to_a_week():
    db = make_db_session()

    assert build_sales_by_day(db, 0, now=NOW, tz=ZoneInfo("UTC")).days == 7
    assert build_sales_by_day(db, 365, now=NOW, tz=ZoneInfo("UTC")).days == 7

    db.close()


def test_days_are_bucketed_in_the_report_timezone():
    db = make_db_session()
    # 22:00 UTC on the 14th is the 15th in Tokyo
    add_sale(db, datetime(2024, 3, 14, 22, 0), 1, "10.00")

    result = build_sales_by_day(db, 2, now=NOW, tz=ZoneInfo("Asia/Tokyo"))

    assert [(p.date, p.total_orders) for p in result.points] == [
        ("2024-03-14", 0),
        ("2024-03-15", 1),
    ]

    db.close()
