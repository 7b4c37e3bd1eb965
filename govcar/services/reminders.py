"""End-of-day reminders for jobs that still have no closing mileage."""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, time, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from govcar.config import get_settings
from govcar.database import transaction
from govcar.models.booking import Booking
from govcar.repositories.booking_repo import BookingRepository
from govcar.repositories.driver_repo import DriverRepository
from govcar.services import line_messages
from govcar.services.lifecycle import utcnow
from govcar.services.notifier import Notifier

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class ReminderSummary:
    drivers_notified: int = 0
    total_pending_jobs: int = 0
    warnings: list[str] = field(default_factory=list)


def end_of_local_day(now: datetime, tz_name: str) -> datetime:
    local = line_messages.to_local(now, tz_name)
    return datetime.combine(local.date(), time.max, tzinfo=local.tzinfo).astimezone(timezone.utc)


async def remind_pending(db: AsyncSession, notifier: Notifier, now: datetime | None = None) -> ReminderSummary:
    now = now or utcnow()
    bookings = BookingRepository(db)
    drivers = DriverRepository(db)

    async with transaction(db):
        pending = await bookings.list_pending_for_reminder(end_of_local_day(now, settings.local_timezone))
        by_driver: dict[str, list[Booking]] = defaultdict(list)
        for booking in pending:
            by_driver[booking.driver_id].append(booking)
        driver_rows = await drivers.list_by_ids(list(by_driver))

    summary = ReminderSummary(total_pending_jobs=len(pending))
    targets = [
        (driver_rows[driver_id], jobs)
        for driver_id, jobs in by_driver.items()
        if driver_id in driver_rows and driver_rows[driver_id].chat_channel_id
    ]
    reports = await asyncio.gather(
        *(
            notifier.send_to_driver(driver, [line_messages.reminder_message(jobs, base_url=notifier.base_url)])
            for driver, jobs in targets
        )
    )
    for report in reports:
        summary.warnings.extend(report.warnings)
        if report.chat_sent:
            summary.drivers_notified += 1

    logger.info(
        "Reminded %d driver(s) about %d pending job(s)", summary.drivers_notified, summary.total_pending_jobs
    )
    return summary
