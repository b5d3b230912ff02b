from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from app.db_models import DeliveryLog
from app.services import report_delivery
from app.services.audit import STATUS_ERROR, log_delivery_event
from app.services.report_delivery import find_and_prepare_due_schedules
from tests.helpers import add_report, add_sale, add_schedule, add_user, make_db_session

UTC = ZoneInfo("UTC")
# Friday; weekday 5 with 0 = Sunday
NOW = datetime(2024, 3, 15, 9, 0, 12, tzinfo=timezone.utc)


def _resolve(db, now=NOW):
    return find_and_prepare_due_schedules(now=now, db=db, tz=UTC)


def test_due_schedule_is_prepared_once_per_minute():
    db = make_db_session()
    report = add_report(db)
    alice = add_user(db, "alice", telegram_id="100")
    add_schedule(db, report, 9, 0, [alice])
    add_sale(db, datetime(2024, 3, 15, 8, 0), 2, "1000.00")

    first = _resolve(db)
    second = _resolve(db, NOW + timedelta(seconds=30))

    assert len(first) == 1
    assert first[0].report_name == "Daily sales report"
    assert first[0].summary.total_revenue == 2000.00
    assert first[0].csv.startswith("Report;Daily sales report\n")
    assert [r.telegram_id for r in first[0].recipients] == ["100"]
    assert second == []

    logs = db.query(DeliveryLog).all()
    assert len(logs) == 1
    assert logs[0].status == "SUCCESS"
    assert logs[0].sent_at == datetime(2024, 3, 15, 9, 0, 12)

    db.close()


def test_schedule_fires_again_on_the_next_day():
    db = make_db_session()
    report = add_report(db)
    add_schedule(db, report, 9, 0, [add_user(db, "alice", telegram_id="100")])

    assert len(_resolve(db)) == 1
    assert len(_resolve(db, NOW + timedelta(days=1))) == 1

    db.close()


def test_schedule_for_another_minute_is_ignored():
    db = make_db_session()
    report = add_report(db)
    add_schedule(db, report, 9, 1, [add_user(db, "alice", telegram_id="100")])

    assert _resolve(db) == []
    assert db.query(DeliveryLog).count() == 0

    db.close()


def test_weekly_schedule_only_fires_on_its_weekday():
    db = make_db_session()
    report = add_report(db)
    alice = add_user(db, "alice", telegram_id="100")
    monday = add_schedule(db, report, 9, 0, [alice], frequency="WEEKLY", weekday=1)
    friday = add_schedule(db, report, 9, 0, [alice], frequency="WEEKLY", weekday=5)

    due = _resolve(db)

    assert [unit.schedule_id for unit in due] == [friday.id]
    assert monday.id not in {log.schedule_id for log in db.query(DeliveryLog).all()}

    db.close()


def test_weekly_schedule_without_weekday_fires_every_day():
    db = make_db_session()
    report = add_report(db)
    add_schedule(
        db, report, 9, 0, [add_user(db, "alice", telegram_id="100")], frequency="WEEKLY"
    )

    assert len(_resolve(db)) == 1

    db.close()


def test_only_the_schedule_not_yet_fired_is_emitted():
    db = make_db_session()
    report = add_report(db)
    alice = add_user(db, "alice", telegram_id="100")
    bob = add_user(db, "bob", telegram_id="200")
    fired = add_schedule(db, report, 9, 0, [alice])
    pending = add_schedule(db, report, 9, 0, [bob])
    log_delivery_event(
        db,
        report_id=report.id,
        user_id=alice.id,
        schedule_id=fired.id,
        status="SUCCESS",
        sent_at=datetime(2024, 3, 15, 9, 0, 1),
    )

    due = _resolve(db)

    assert [unit.schedule_id for unit in due] == [pending.id]

    db.close()


def test_error_rows_do_not_count_as_delivered():
    db = make_db_session()
    report = add_report(db)
    alice = add_user(db, "alice", telegram_id="100")
    schedule = add_schedule(db, report, 9, 0, [alice])
    log_delivery_event(
        db,
        report_id=report.id,
        user_id=alice.id,
        schedule_id=schedule.id,
        status=STATUS_ERROR,
        sent_at=datetime(2024, 3, 15, 9, 0, 5),
        error_message="chat not found",
    )

    assert len(_resolve(db)) == 1

    db.close()


def test_schedule_without_eligible_recipients_is_skipped_without_facts():
    db = make_db_session()
    report = add_report(db)
    unbound = add_user(db, "unbound")
    blank = add_user(db, "blank", telegram_id="   ")
    disabled = add_user(db, "disabled", telegram_id="300", is_active=False)
    add_schedule(db, report, 9, 0, [unbound, blank, disabled])
    add_schedule(db, report, 9, 0, [])

    assert _resolve(db) == []
    assert db.query(DeliveryLog).count() == 0

    db.close()


def test_ineligible_recipients_are_dropped_and_order_is_kept():
    db = make_db_session()
    report = add_report(db)
    carol = add_user(db, "carol", telegram_id="300")
    unbound = add_user(db, "unbound")
    alice = add_user(db, "alice", telegram_id="100")
    add_schedule(db, report, 9, 0, [carol, unbound, alice])

    due = _resolve(db)

    assert [r.user_id for r in due[0].recipients] == [carol.id, alice.id]
    assert sorted(log.user_id for log in db.query(DeliveryLog).all()) == sorted(
        [carol.id, alice.id]
    )

    db.close()


def test_inactive_schedule_and_inactive_report_are_excluded():
    db = make_db_session()
    alice = add_user(db, "alice", telegram_id="100")
    live = add_report(db, "Live")
    retired = add_report(db, "Retired", is_active=False)
    add_schedule(db, live, 9, 0, [alice], is_active=False)
    add_schedule(db, retired, 9, 0, [alice])

    assert _resolve(db) == []

    db.close()


def test_weekly_report_covers_last_seven_days():
    db = make_db_session()
    report = add_report(db, "Weekly sales report", period_type="WEEK")
    add_schedule(db, report, 9, 0, [add_user(db, "alice", telegram_id="100")])
    add_sale(db, datetime(2024, 3, 9, 12, 0), 1, "100.00")
    add_sale(db, datetime(2024, 3, 8, 12, 0), 1, "100.00")

    due = _resolve(db)

    assert due[0].summary.total_orders == 1

    db.close()


def test_ticks_are_matched_in_the_report_timezone():
    db = make_db_session()
    report = add_report(db)
    add_schedule(db, report, 18, 0, [add_user(db, "alice", telegram_id="100")])

    due = find_and_prepare_due_schedules(now=NOW, db=db, tz=ZoneInfo("Asia/Tokyo"))

    assert len(due) == 1
    # Ledger keeps UTC
    assert db.query(DeliveryLog).one().sent_at == datetime(2024, 3, 15, 9, 0, 12)

    db.close()


def test_storage_error_rolls_back_the_whole_run(monkeypatch):
    db = make_db_session()
    report = add_report(db)
    alice = add_user(db, "alice", telegram_id="100")
    add_schedule(db, report, 9, 0, [alice])
    add_schedule(db, report, 9, 0, [alice])

    real_generate = report_delivery.generate_sales_report
    calls = []

    def flaky_generate(*args, **kwargs):
        calls.append(1)
        if len(calls) == 2:
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return real_generate(*args, **kwargs)

    monkeypatch.setattr(report_delivery, "generate_sales_report", flaky_generate)

    with pytest.raises(OperationalError):
        _resolve(db)

    assert db.query(DeliveryLog).count() == 0

    monkeypatch.setattr(report_delivery, "generate_sales_report", real_generate)
    assert len(_resolve(db)) == 2

    db.close()
