"""
Driver assignment.

Flow (automatic):
  1. Head of the active+AVAILABLE queue (queue_order, then id)
  2. Re-read that driver under lock; bail out if it went stale or is no
     longer the head of the queue
  3. Write the booking (ASSIGNED, assigned_at) and rotate the driver
     to the queue tail in the same transaction
  4. Notify the driver and the admin mailbox, best-effort

Manual assignment follows the same order: booking writes, one rotation,
then notifications. Nothing is sent until the transaction has committed.
"""
import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from govcar.config import get_settings
from govcar.database import transaction
from govcar.exceptions import DriverUnavailable, InvalidArgument, NoDriverAvailable, NotFound, StoreError
from govcar.models.booking import Booking
from govcar.models.driver import Driver
from govcar.repositories.booking_repo import BookingRepository
from govcar.repositories.driver_repo import DriverRepository
from govcar.schemas.schemas import AcceptOutcomeEnum
from govcar.services import line_messages
from govcar.services.lifecycle import ensure_transition, utcnow
from govcar.services.notifier import Notifier

logger = logging.getLogger(__name__)
settings = get_settings()

ALREADY_ACCEPTED = {"ACCEPTED", "STARTED", "COMPLETED"}


@dataclass
class AssignmentResult:
    driver_id: str
    driver_name: str
    queue_order: int
    booking_ids: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class AcceptResult:
    booking_id: str
    outcome: AcceptOutcomeEnum
    warnings: list[str] = field(default_factory=list)


class AssignmentService:
    def __init__(self, db: AsyncSession, notifier: Notifier):
        self.db = db
        self.notifier = notifier
        self.bookings = BookingRepository(db)
        self.drivers = DriverRepository(db)

    # ------------------------------------------------------------------
    # Automatic
    # ------------------------------------------------------------------

    async def assign_next(self, booking_id: str) -> AssignmentResult:
        async with transaction(self.db):
            booking = await self.bookings.lock(booking_id)
            if booking is None:
                raise NotFound("Booking", booking_id)
            ensure_transition(booking, "ASSIGNED")

            # selection, booking write and rotation share one queue lock
            await self.drivers.lock_queue()
            candidate = await self.drivers.first_available()
            if candidate is None:
                raise NoDriverAvailable("No active driver is available in the queue")

            driver = await self.drivers.lock(candidate.id)
            if driver is None or not driver.is_eligible:
                raise DriverUnavailable(candidate.id)
            if await self.drivers.head_id() != driver.id:
                raise DriverUnavailable(candidate.id)

            await self.bookings.assign([booking_id], driver.id, utcnow())
            if settings.mark_driver_busy_on_assign:
                await self.drivers.set_status(driver.id, status="BUSY")
            queue_order = await self.drivers.rotate(driver.id)

        logger.info("Assigned booking=%s to driver=%s (next queue_order=%s)", booking_id, driver.id, queue_order)
        warnings = await self.notify_assignments([(driver, [booking_id])])
        return AssignmentResult(
            driver_id=driver.id,
            driver_name=driver.full_name,
            queue_order=queue_order,
            booking_ids=[booking_id],
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Manual
    # ------------------------------------------------------------------

    async def assign_manual(self, booking_ids: list[str], driver_id: str | None) -> AssignmentResult:
        """
        Assign a batch of bookings to one driver. An empty batch only moves
        the driver to the queue tail. Rotation happens once per call.
        """
        if not driver_id:
            raise InvalidArgument("driver_id is required")
        booking_ids = list(dict.fromkeys(booking_ids))

        async with transaction(self.db):
            driver = await self.drivers.get(driver_id)
            if driver is None:
                raise NotFound("Driver", driver_id)

            if booking_ids:
                found = await self.bookings.list_by_ids(booking_ids)
                missing = set(booking_ids) - {b.id for b in found}
                if missing:
                    raise NotFound("Booking", ", ".join(sorted(missing)))
                for booking in found:
                    ensure_transition(booking, "ASSIGNED")

                written = await self.bookings.assign(booking_ids, driver_id, utcnow())
                if written != len(booking_ids):
                    raise StoreError(f"Batch update wrote {written} of {len(booking_ids)} bookings")
                if settings.mark_driver_busy_on_assign:
                    await self.drivers.set_status(driver_id, status="BUSY")

            queue_order = await self.drivers.rotate(driver_id)

        if booking_ids:
            logger.info("Manually assigned %d booking(s) to driver=%s", len(booking_ids), driver_id)
        else:
            logger.info("Driver=%s moved to queue tail without a booking", driver_id)

        warnings: list[str] = []
        if booking_ids:
            if driver.chat_channel_id:
                warnings = await self.notify_assignments([(driver, booking_ids)])
            else:
                warnings = [f"Driver {driver.full_name} has no chat channel; no notification sent"]

        return AssignmentResult(
            driver_id=driver.id,
            driver_name=driver.full_name,
            queue_order=queue_order,
            booking_ids=booking_ids,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Acknowledgement
    # ------------------------------------------------------------------

    async def accept_job(self, booking_id: str, driver_id: str | None) -> AcceptResult:
        """
        Driver acknowledgement. Safe to call repeatedly: a booking that is
        already past acceptance is left untouched and the driver is told so.
        """
        async with transaction(self.db):
            booking = await self.bookings.lock(booking_id)
            if booking is None:
                logger.info("Accept for unknown booking=%s ignored", booking_id)
                return AcceptResult(booking_id, AcceptOutcomeEnum.not_found)

            driver = await self.drivers.get(driver_id) if driver_id else None

            if booking.status in ALREADY_ACCEPTED:
                outcome = AcceptOutcomeEnum.already_accepted
                reply = line_messages.already_accepted_message()
            elif driver_id is not None and booking.driver_id != driver_id:
                outcome = AcceptOutcomeEnum.not_assigned
                reply = line_messages.not_assigned_message(booking)
            elif booking.status != "ASSIGNED":
                outcome = AcceptOutcomeEnum.not_acceptable
                reply = line_messages.not_acceptable_message(booking)
            else:
                await self.bookings.mark_accepted(booking_id, utcnow())
                outcome = AcceptOutcomeEnum.accepted
                reply = line_messages.accept_success_message(booking, base_url=self.notifier.base_url)

        logger.info("Accept booking=%s driver=%s -> %s", booking_id, driver_id, outcome.value)
        if driver is None and booking.driver_id:
            driver = await self.drivers.get(booking.driver_id)
        report = await self.notifier.send_to_driver(driver, [reply])
        return AcceptResult(booking_id, outcome, report.warnings)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def notify_assignments(self, assignments: list[tuple[Driver, list[str]]]) -> list[str]:
        """
        Fan out one notification per (driver, booking) after the assignment
        has committed. Reads post-mutation state and skips bookings that no
        longer belong to the driver. Never raises for delivery failures.
        """
        booking_ids = [bid for _, ids in assignments for bid in ids]
        try:
            async with transaction(self.db):
                by_id = {b.id: b for b in await self.bookings.list_by_ids(booking_ids)}
                vehicles = await self.bookings.list_vehicles([b.vehicle_id for b in by_id.values()])
        except StoreError as exc:
            return [f"Could not load bookings for notification: {exc.detail}"]

        jobs: list[tuple[Driver, Booking]] = [
            (driver, by_id[bid])
            for driver, ids in assignments
            for bid in ids
            if bid in by_id and by_id[bid].driver_id == driver.id
        ]
        reports = await asyncio.gather(
            *(
                self.notifier.notify_driver_assignment(driver, booking, vehicles.get(booking.vehicle_id))
                for driver, booking in jobs
            ),
            return_exceptions=True,
        )

        warnings: list[str] = []
        delivered: list[str] = []
        for (_, booking), report in zip(jobs, reports):
            if isinstance(report, BaseException):
                logger.error("Notification for booking=%s raised: %s", booking.id, report)
                warnings.append(f"Notification for {booking.request_code} failed: {report}")
                continue
            warnings.extend(report.warnings)
            if report.chat_sent:
                delivered.append(booking.id)

        if delivered:
            try:
                async with transaction(self.db):
                    await self.bookings.mark_notified(delivered)
            except StoreError as exc:
                warnings.append(f"Could not record notification flag: {exc.detail}")
        return warnings
