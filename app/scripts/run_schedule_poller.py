"""Long-running scheduler process.

Polls for due schedules every SCHEDULE_POLL_INTERVAL_SECONDS. The messaging
transport lives outside this service, so the bundled sink only logs what
would be sent; deployments plug their own sink into SchedulePoller.

Usage (from repo root):
    SECRET_KEY=... DATABASE_URL=... python -m app.scripts.run_schedule_poller
"""
import asyncio
import logging

from app.config import settings
from app.database import engine
from app.db_models import Base
from app.models import DueRecipient, DueSchedule
from app.services.schedule_poller import SchedulePoller

logger = logging.getLogger(__name__)


class LoggingSink:
    def deliver(self, work: DueSchedule, recipient: DueRecipient) -> None:
        logger.info(
            "Would send %r (%d bytes) to chat %s.",
            work.report_name,
            len(work.csv.encode("utf-8")),
            recipient.telegram_id,
        )


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not settings.SCHEDULER_ENABLED:
        logger.info("Scheduler disabled; exiting.")
        return

    Base.metadata.create_all(bind=engine)
    poller = SchedulePoller(LoggingSink())
    try:
        asyncio.run(poller.run())
    except KeyboardInterrupt:
        logger.info("Schedule poller stopped.")


if __name__ == "__main__":
    main()
