"""Periodic driver for scheduled report delivery."""
from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models import DueRecipient, DueSchedule
from app.services.audit import record_delivery_failure
from app.services.report_delivery import find_and_prepare_due_schedules

logger = logging.getLogger(__name__)


class PollerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class ReportSink(Protocol):
    """Hands a prepared report to one recipient over the messaging channel."""

    def deliver(self, work: DueSchedule, recipient: DueRecipient) -> object:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulePoller:
    """
    Fire the due-schedule resolver on a fixed interval and pass its work units
    to a sink.

    Only one run is ever in flight: a tick that arrives while the previous run
    is still going is dropped. Failures are logged and the next tick is the
    retry.
    """

    def __init__(
        self,
        sink: ReportSink,
        *,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.sink = sink
        self.session_factory = session_factory
        self.interval_seconds = (
            settings.SCHEDULE_POLL_INTERVAL_SECONDS
            if interval_seconds is None
            else interval_seconds
        )
        self.clock = clock
        self.state = PollerState.IDLE
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    async def tick(self) -> Optional[List[DueSchedule]]:
        """Run one resolver pass, or return None if one is already running."""
        if self._lock.locked():
            logger.debug("Previous schedule run still in progress; skipping tick.")
            return None

        async with self._lock:
            self.state = PollerState.RUNNING
            try:
                return await self._run_once()
            finally:
                self.state = PollerState.IDLE

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        logger.info("Schedule poller started (every %.1fs).", self.interval_seconds)
        while True:
            task = asyncio.create_task(self.tick())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

            next_at += self.interval_seconds
            await asyncio.sleep(max(0.0, next_at - loop.time()))

    async def _run_once(self) -> List[DueSchedule]:
        now = self.clock()
        try:
            work_units = await asyncio.to_thread(self._resolve, now)
        except Exception:
            logger.exception("Scheduled report run failed; waiting for the next tick.")
            return []

        for work in work_units:
            for recipient in work.recipients:
                await self._deliver(work, recipient)
        return work_units

    def _resolve(self, now: datetime) -> List[DueSchedule]:
        session = self.session_factory()
        try:
            return find_and_prepare_due_schedules(now=now, db=session)
        finally:
            session.close()

    async def _deliver(self, work: DueSchedule, recipient: DueRecipient) -> None:
        try:
            if inspect.iscoroutinefunction(self.sink.deliver):
                await self.sink.deliver(work, recipient)
            else:
                await asyncio.to_thread(self.sink.deliver, work, recipient)
        except Exception as exc:
            logger.exception(
                "Delivering schedule %s to user %s failed.",
                work.schedule_id,
                recipient.user_id,
            )
            await asyncio.to_thread(self._record_failure, work, recipient, exc)

    def _record_failure(
        self, work: DueSchedule, recipient: DueRecipient, exc: Exception
    ) -> None:
        session = self.session_factory()
        try:
            record_delivery_failure(
                session,
                schedule_id=work.schedule_id,
                report_id=work.report_id,
                user_id=recipient.user_id,
                error_message=str(exc) or exc.__class__.__name__,
                now=self.clock(),
            )
        except SQLAlchemyError:
            session.rollback()
            logger.exception(
                "Could not record delivery failure for schedule %s.", work.schedule_id
            )
        finally:
            session.close()
