from typing import List

from sqlalchemy.orm import Session as OrmSession

from app.db_models import Report, Schedule, ScheduleRecipient, User
from app.models import (
    ScheduleCreate,
    ScheduleOut,
    ScheduleRecipientOut,
    ScheduleReportRef,
)
from app.services.reporting import ReportNotFoundError


class ScheduleNotFoundError(Exception):
    """Raised when the requested schedule_id does not exist."""


class UnknownRecipientError(Exception):
    """Raised when a schedule is created for user ids that do not exist."""


def get_schedule_or_raise(db: OrmSession, schedule_id: int) -> Schedule:
    schedule = db.query(Schedule).filter(Schedule.id == schedule_id).first()
    if not schedule:
        raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")
    return schedule


def schedule_to_out(schedule: Schedule) -> ScheduleOut:
    return ScheduleOut(
        id=schedule.id,
        hour=schedule.hour,
        minute=schedule.minute,
        frequency=schedule.frequency,
        weekday=schedule.weekday,
        is_active=schedule.is_active,
        report=ScheduleReportRef(id=schedule.report.id, name=schedule.report.name),
        recipients=[
            ScheduleRecipientOut(
                id=link.user.id,
                username=link.user.username,
                telegram_id=link.user.telegram_id,
            )
            for link in schedule.recipient_links
        ],
    )


def list_schedules(db: OrmSession) -> List[ScheduleOut]:
    schedules = db.query(Schedule).order_by(Schedule.id.asc()).all()
    return [schedule_to_out(s) for s in schedules]


def create_schedule(db: OrmSession, data: ScheduleCreate) -> ScheduleOut:
    """
    Create a schedule and attach its recipients.

    Duplicate recipient ids collapse into one link; the first occurrence
    decides the delivery order.
    """
    report = db.query(Report).filter(Report.id == data.report_id).first()
    if not report:
        raise ReportNotFoundError(f"Report {data.report_id} not found")

    recipient_ids = list(dict.fromkeys(data.recipient_ids))
    if recipient_ids:
        known = {
            user_id
            for (user_id,) in db.query(User.id).filter(User.id.in_(recipient_ids)).all()
        }
        missing = [user_id for user_id in recipient_ids if user_id not in known]
        if missing:
            raise UnknownRecipientError(f"Unknown recipient ids: {missing}")

    schedule = Schedule(
        report_id=report.id,
        hour=data.hour,
        minute=data.minute,
        frequency=data.frequency,
        weekday=data.weekday if data.frequency == "WEEKLY" else None,
        is_active=True,
    )
    db.add(schedule)
    db.flush()

    for user_id in recipient_ids:
        db.add(ScheduleRecipient(schedule_id=schedule.id, user_id=user_id))

    db.commit()
    db.refresh(schedule)
    return schedule_to_out(schedule)


def delete_schedule(db: OrmSession, schedule_id: int) -> None:
    schedule = get_schedule_or_raise(db, schedule_id)
    db.delete(schedule)  # cascades to recipient links
    db.commit()
