"""Background scheduler for periodic tasks (session reminders)."""
import asyncio
import logging
from datetime import timedelta

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import AsyncSessionLocal
from src.config.settings import settings

logger = logging.getLogger(__name__)


class BackgroundScheduler:
    """Runs periodic background tasks using asyncio."""

    def __init__(self):
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def start(self):
        """Start all background tasks."""
        if not settings.REMINDER_ENABLED:
            logger.info("BackgroundScheduler disabled (REMINDER_ENABLED=false)")
            return
        logger.info("BackgroundScheduler starting...")
        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(self._reminder_loop()),
        ]
        logger.info("BackgroundScheduler started with %d tasks", len(self._tasks))

    async def stop(self):
        """Gracefully stop all background tasks."""
        logger.info("BackgroundScheduler stopping...")
        self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("BackgroundScheduler stopped")

    async def _reminder_loop(self):
        """Check for upcoming sessions periodically and record reminders."""
        while not self._stop_event.is_set():
            try:
                async with AsyncSessionLocal() as db:
                    await self.send_due_reminders(db)
            except Exception as e:
                logger.error("Reminder loop error: %s", e)
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=settings.REMINDER_INTERVAL_SECONDS,
                )
                break
            except asyncio.TimeoutError:
                pass

    async def send_due_reminders(self, db: AsyncSession) -> int:
        """Record reminders for approved sessions starting within the lead window.

        Returns the number of sessions reminded.
        """
        from src.domains.notifications.models import ScheduleNotificationType
        from src.domains.notifications.service import NotificationRecorder
        from src.domains.schedule.models import ScheduledSession, ScheduledSessionStatus
        from src.domains.schedule.timeutils import schedule_now

        now = schedule_now()
        window_end = now + timedelta(hours=settings.REMINDER_LEAD_HOURS)

        query = select(ScheduledSession).where(
            and_(
                ScheduledSession.session_date >= now,
                ScheduledSession.session_date <= window_end,
                ScheduledSession.status == ScheduledSessionStatus.APPROVED,
                ScheduledSession.reminder_sent == False,
            )
        )
        result = await db.execute(query)
        sessions = list(result.scalars().all())

        recorder = NotificationRecorder(db)
        reminded = 0
        for session in sessions:
            session_id = session.id
            try:
                session.reminder_sent = True
                await db.commit()
            except Exception as e:
                logger.error("Failed to flag reminder for session %s: %s", session_id, e)
                await db.rollback()
                break  # loaded rows are expired; the next sweep picks up the rest

            when = session.session_date.strftime("%Y-%m-%d %H:%M")
            await recorder.record_many(
                [session.student_id, session.coach_id],
                ScheduleNotificationType.SESSION_REMINDER,
                title="Upcoming session",
                message=f"'{session.title}' starts at {when}.",
                payload={
                    "session_id": str(session.id),
                    "coach_id": str(session.coach_id),
                    "student_id": str(session.student_id),
                    "session_date": session.session_date.isoformat(),
                },
                session_id=session.id,
            )
            reminded += 1
            logger.info("Recorded reminder for session %s", session.id)

        return reminded


# Singleton instance
scheduler = BackgroundScheduler()
