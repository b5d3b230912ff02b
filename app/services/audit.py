from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.db_models import DeliveryLog, Report, User
from app.services.periods import to_utc_naive

STATUS_SUCCESS = "SUCCESS"
STATUS_ERROR = "ERROR"

MAX_LOG_LIMIT = 500


def log_delivery_event(
    db: Session,
    *,
    report_id: int,
    user_id: int,
    schedule_id: Optional[int],
    status: str,
    sent_at: Optional[datetime] = None,
    error_message: Optional[str] = None,
) -> DeliveryLog:
    entry = DeliveryLog(
        report_id=report_id,
        user_id=user_id,
        schedule_id=schedule_id,
        status=status,
        sent_at=sent_at or datetime.utcnow(),
        error_message=error_message,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def record_delivery_facts(
    db: Session,
    *,
    report_id: int,
    schedule_id: int,
    user_ids: Iterable[int],
    sent_at: datetime,
) -> List[DeliveryLog]:
    """
    Stage one SUCCESS row per recipient, all sharing ``sent_at``.

    Rows are flushed but not committed; the caller owns the transaction.
    """
    entries = [
        DeliveryLog(
            report_id=report_id,
            user_id=user_id,
            schedule_id=schedule_id,
            status=STATUS_SUCCESS,
            sent_at=sent_at,
        )
        for user_id in user_ids
    ]
    db.add_all(entries)
    db.flush()
    return entries


def has_successful_delivery_since(db: Session, schedule_id: int, since: datetime) -> bool:
    hit = (
        db.query(DeliveryLog.id)
        .filter(
            DeliveryLog.schedule_id == schedule_id,
            DeliveryLog.sent_at >= since,
            DeliveryLog.status == STATUS_SUCCESS,
        )
        .first()
    )
    return hit is not None


def record_delivery_failure(
    db: Session,
    *,
    schedule_id: Optional[int],
    report_id: int,
    user_id: int,
    error_message: str,
    now: Optional[datetime] = None,
) -> DeliveryLog:
    return log_delivery_event(
        db,
        report_id=report_id,
        user_id=user_id,
        schedule_id=schedule_id,
        status=STATUS_ERROR,
        sent_at=to_utc_naive(now) if now else None,
        error_message=error_message,
    )


def list_delivery_logs(
    db: Session,
    *,
    report_id: Optional[int] = None,
    user_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 100,
) -> List[Tuple[DeliveryLog, Optional[str], Optional[str]]]:
    """Newest first, each row paired with its report name and username."""
    limit = max(1, min(limit, MAX_LOG_LIMIT))

    query = (
        db.query(DeliveryLog, Report.name, User.username)
        .outerjoin(Report, Report.id == DeliveryLog.report_id)
        .outerjoin(User, User.id == DeliveryLog.user_id)
    )
    if report_id is not None:
        query = query.filter(DeliveryLog.report_id == report_id)
    if user_id is not None:
        query = query.filter(DeliveryLog.user_id == user_id)
    if status is not None:
        query = query.filter(DeliveryLog.status == status)

    return query.order_by(DeliveryLog.sent_at.desc(), DeliveryLog.id.desc()).limit(limit).all()
