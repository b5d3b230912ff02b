"""Cron-friendly entrypoint: resolve due schedules once and log the result."""
import logging

from app.config import settings
from app.database import SessionLocal, engine
from app.db_models import Base
from app.services.report_delivery import find_and_prepare_due_schedules

logger = logging.getLogger(__name__)


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        due = find_and_prepare_due_schedules(db=session)
    finally:
        session.close()

    if not due:
        logger.info("No schedules due.")
    for work in due:
        logger.info(
            "Schedule %s (%s): %d recipient(s), revenue %.2f over %d order(s).",
            work.schedule_id,
            work.report_name,
            len(work.recipients),
            work.summary.total_revenue,
            work.summary.total_orders,
        )


if __name__ == "__main__":
    main()
