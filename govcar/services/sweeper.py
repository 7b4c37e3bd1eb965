"""
Timeout reassignment.

Bookings left ASSIGNED without an acknowledgement past the timeout move to
the driver that follows the current one in a snapshot of the available
queue (wrapping around). This does not touch queue_order: it is a
separate advance from the head-of-queue pick used by normal assignment.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from govcar.config import get_settings
from govcar.database import transaction
from govcar.exceptions import DispatchError
from govcar.models.driver import Driver
from govcar.repositories.booking_repo import BookingRepository
from govcar.repositories.driver_repo import DriverRepository
from govcar.services.assignment import AssignmentService
from govcar.services.lifecycle import utcnow
from govcar.services.notifier import Notifier

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class SweepSummary:
    expired_count: int = 0
    reassigned_count: int = 0
    failed_count: int = 0
    message: str = ""
    warnings: list[str] = field(default_factory=list)


def next_in_rotation(drivers: list[Driver], current_driver_id: str | None) -> Driver | None:
    """Circular successor of the current driver; head of list when absent."""
    if not drivers:
        return None
    if current_driver_id is None:
        return drivers[0]
    for index, driver in enumerate(drivers):
        if driver.id == current_driver_id:
            return drivers[(index + 1) % len(drivers)]
    return drivers[0]


class TimeoutSweeper:
    def __init__(self, db: AsyncSession, notifier: Notifier, timeout_minutes: int | None = None):
        self.db = db
        self.notifier = notifier
        self.timeout = timedelta(minutes=timeout_minutes or settings.assignment_timeout_minutes)
        self.bookings = BookingRepository(db)
        self.drivers = DriverRepository(db)

    async def sweep(self, now: datetime | None = None) -> SweepSummary:
        now = now or utcnow()
        cutoff = now - self.timeout

        async with transaction(self.db):
            expired = await self.bookings.list_expired_assignments(cutoff)
            queue = await self.drivers.list_available()

        summary = SweepSummary(expired_count=len(expired))
        if not expired:
            summary.message = "No assignments past the acknowledgement timeout"
            return summary
        if not queue:
            summary.message = "No available drivers; nothing to do"
            logger.warning("Sweep found %d expired booking(s) but no available drivers", len(expired))
            return summary

        reassigned: list[tuple[Driver, list[str]]] = []
        for booking in expired:
            successor = next_in_rotation(queue, booking.driver_id)
            try:
                async with transaction(self.db):
                    changed = await self.bookings.reassign_if_unacknowledged(
                        booking.id, booking.driver_id, successor.id, now
                    )
            except DispatchError as exc:
                summary.failed_count += 1
                logger.error("Reassigning booking=%s failed: %s", booking.id, exc.detail)
                continue

            if not changed:
                logger.info("Booking=%s changed during sweep; left as is", booking.id)
                continue

            summary.reassigned_count += 1
            reassigned.append((successor, [booking.id]))
            logger.info(
                "Reassigned booking=%s from driver=%s to driver=%s",
                booking.id,
                booking.driver_id,
                successor.id,
            )

        if reassigned:
            summary.warnings = await AssignmentService(self.db, self.notifier).notify_assignments(reassigned)

        summary.message = f"Reassigned {summary.reassigned_count} of {summary.expired_count} expired booking(s)"
        return summary
