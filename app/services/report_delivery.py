import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.db_models import Report, Schedule, ScheduleRecipient, User
from app.models import DueRecipient, DueSchedule
from app.services.audit import has_successful_delivery_since, record_delivery_facts
from app.services.periods import (
    get_report_tz,
    period_key_for_type,
    to_report_local,
    to_utc_naive,
)
from app.services.report_exports import build_csv_with_summary
from app.services.reporting import generate_sales_report

logger = logging.getLogger(__name__)


class ScheduleTick:
    """The wall-clock instant a resolver run matches schedules against."""

    def __init__(self, now_local: datetime) -> None:
        self.now_local = now_local
        self.hour = now_local.hour
        self.minute = now_local.minute
        # 0 = Sunday .. 6 = Saturday
        self.weekday = now_local.isoweekday() % 7
        self.minute_start = now_local.replace(second=0, microsecond=0)


def current_tick(now: datetime, tz: ZoneInfo) -> ScheduleTick:
    return ScheduleTick(to_report_local(now, tz))


def _load_matching_schedules(
    session: Session, tick: ScheduleTick
) -> List[Tuple[Schedule, Report]]:
    # Schedules pointing at a missing or disabled report drop out via the join
    return (
        session.query(Schedule, Report)
        .join(Report, Report.id == Schedule.report_id)
        .filter(
            Schedule.is_active.is_(True),
            Report.is_active.is_(True),
            Schedule.hour == tick.hour,
            Schedule.minute == tick.minute,
        )
        .order_by(Schedule.id.asc())
        .all()
    )


def _is_deliverable(user: User) -> bool:
    return bool(user.is_active and (user.telegram_id or "").strip())


def _load_recipients(
    session: Session, schedule_ids: Sequence[int]
) -> Dict[int, List[DueRecipient]]:
    """
    Fetch recipients for the given schedules, keyed by schedule id in the
    order the schedules were matched. Within a schedule, recipients keep the
    order in which they were attached.
    """
    grouped: Dict[int, List[DueRecipient]] = OrderedDict(
        (schedule_id, []) for schedule_id in schedule_ids
    )

    rows = (
        session.query(ScheduleRecipient.schedule_id, User)
        .join(User, User.id == ScheduleRecipient.user_id)
        .filter(ScheduleRecipient.schedule_id.in_(list(schedule_ids)))
        .order_by(ScheduleRecipient.id.asc())
        .all()
    )

    for schedule_id, user in rows:
        if not _is_deliverable(user):
            continue
        grouped[schedule_id].append(
            DueRecipient(user_id=user.id, telegram_id=user.telegram_id.strip())
        )

    return grouped


def _is_due_today(schedule: Schedule, tick: ScheduleTick) -> bool:
    if schedule.frequency != "WEEKLY" or schedule.weekday is None:
        return True
    return schedule.weekday == tick.weekday


def find_and_prepare_due_schedules(
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
    tz: Optional[ZoneInfo] = None,
) -> List[DueSchedule]:
    """
    Resolve the schedules that fire on the current minute and prepare their
    reports for delivery.

    A schedule is skipped when it is weekly and today is not its weekday, when
    a SUCCESS delivery already exists for it since the start of the current
    minute, or when none of its recipients is active with a bound address.
    For every emitted work unit one SUCCESS row per recipient is written to
    the delivery ledger, which is what makes repeated ticks inside the same
    minute return nothing.

    All ledger rows of a run are committed together once every work unit has
    been built. A storage error rolls the run back and propagates.
    """
    owns_session = False
    session = db
    if session is None:
        session = SessionLocal()
        owns_session = True

    tz = tz or get_report_tz()
    tick = current_tick(now or datetime.now(timezone.utc), tz)
    sent_at = to_utc_naive(tick.now_local)
    minute_start_utc = to_utc_naive(tick.minute_start)

    results: List[DueSchedule] = []

    try:
        matched = _load_matching_schedules(session, tick)
        if not matched:
            return []

        recipients_by_schedule = _load_recipients(
            session, [schedule.id for schedule, _ in matched]
        )

        for schedule, report in matched:
            if not _is_due_today(schedule, tick):
                logger.debug(
                    "Schedule %s runs on weekday %s, today is %s; skipping.",
                    schedule.id,
                    schedule.weekday,
                    tick.weekday,
                )
                continue

            if has_successful_delivery_since(session, schedule.id, minute_start_utc):
                logger.info(
                    "Schedule %s already delivered since %s; skipping.",
                    schedule.id,
                    tick.minute_start.isoformat(),
                )
                continue

            recipients = recipients_by_schedule.get(schedule.id, [])
            if not recipients:
                logger.info("Schedule %s has no eligible recipients; skipping.", schedule.id)
                continue

            period_key = period_key_for_type(report.period_type)
            sales_report = generate_sales_report(
                session, period_key, now=tick.now_local, tz=tz
            )

            results.append(
                DueSchedule(
                    schedule_id=schedule.id,
                    report_id=report.id,
                    report_name=report.name,
                    summary=sales_report.summary,
                    csv=build_csv_with_summary(
                        report.name, sales_report.summary, sales_report.csv
                    ),
                    recipients=recipients,
                )
            )

            record_delivery_facts(
                session,
                report_id=report.id,
                schedule_id=schedule.id,
                user_ids=[r.user_id for r in recipients],
                sent_at=sent_at,
            )

        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.error(
            "Resolving due schedules for %s failed; run rolled back.",
            tick.now_local.isoformat(),
        )
        raise
    finally:
        if owns_session:
            session.close()

    if results:
        logger.info(
            "Prepared %d scheduled report(s) for %02d:%02d.",
            len(results),
            tick.hour,
            tick.minute,
        )
    return results
