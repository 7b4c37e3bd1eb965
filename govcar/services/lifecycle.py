"""
Booking lifecycle: state machine plus the plain status changes that sit
outside driver dispatch (create, start, complete with mileage, cancel,
reject).
"""
import logging
import secrets
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from govcar.config import get_settings
from govcar.database import transaction
from govcar.exceptions import InvalidArgument, NotFound
from govcar.models.booking import Booking
from govcar.repositories.booking_repo import BookingRepository
from govcar.repositories.driver_repo import DriverRepository
from govcar.schemas.schemas import BookingCreateRequest

logger = logging.getLogger(__name__)
settings = get_settings()

VALID_TRANSITIONS: dict[str, set[str]] = {
    "REQUESTED": {"ASSIGNED", "CANCELLED", "REJECTED"},
    "ASSIGNED": {"ASSIGNED", "ACCEPTED", "STARTED", "COMPLETED", "CANCELLED", "REJECTED"},
    "ACCEPTED": {"ASSIGNED", "STARTED", "COMPLETED", "CANCELLED", "REJECTED"},
    "STARTED": {"COMPLETED", "CANCELLED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
    "REJECTED": set(),
}

# Statuses that require a driver on the booking
DRIVER_BOUND = {"ASSIGNED", "ACCEPTED", "STARTED", "COMPLETED"}


def is_valid_transition(current: str, next_state: str) -> bool:
    return next_state in VALID_TRANSITIONS.get(current, set())


def ensure_transition(booking: Booking, next_state: str) -> None:
    if not is_valid_transition(booking.status, next_state):
        raise InvalidArgument(
            f"Booking {booking.request_code} cannot move from {booking.status} to {next_state}"
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_request_code(now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"REQ-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


class BookingLifecycle:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.bookings = BookingRepository(db)
        self.drivers = DriverRepository(db)

    async def create(self, payload: BookingCreateRequest) -> Booking:
        if payload.end_at is not None and payload.end_at < payload.start_at:
            raise InvalidArgument("end_at must not be before start_at")
        async with transaction(self.db):
            if payload.vehicle_id and await self.bookings.get_vehicle(payload.vehicle_id) is None:
                raise NotFound("Vehicle", payload.vehicle_id)
            booking = await self.bookings.add(
                Booking(
                    request_code=new_request_code(),
                    requester_name=payload.requester_name,
                    purpose=payload.purpose,
                    destination=payload.destination,
                    passenger_count=payload.passenger_count,
                    start_at=payload.start_at,
                    end_at=payload.end_at,
                    vehicle_id=payload.vehicle_id,
                    status="REQUESTED",
                    notified=False,
                )
            )
        logger.info("Booking %s created (%s)", booking.id, booking.request_code)
        return booking

    async def _load_for(self, booking_id: str, next_state: str) -> Booking:
        booking = await self.bookings.lock(booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        ensure_transition(booking, next_state)
        if next_state in DRIVER_BOUND and booking.driver_id is None:
            raise InvalidArgument(f"Booking {booking.request_code} has no driver")
        return booking

    async def start(self, booking_id: str, mileage: int) -> Booking:
        async with transaction(self.db):
            booking = await self._load_for(booking_id, "STARTED")
            await self.bookings.update_fields(booking_id, status="STARTED", start_mileage=mileage)
        logger.info("Booking %s started at mileage %s", booking_id, mileage)
        return await self.bookings.get(booking_id)

    async def complete(self, booking_id: str, mileage: int) -> Booking:
        async with transaction(self.db):
            booking = await self._load_for(booking_id, "COMPLETED")
            start = booking.start_mileage or 0
            if mileage < start:
                raise InvalidArgument(f"End mileage {mileage} is below start mileage {start}")
            await self.bookings.update_fields(
                booking_id,
                status="COMPLETED",
                end_mileage=mileage,
                distance=mileage - start,
                completed_at=utcnow(),
            )
            if settings.mark_driver_busy_on_assign and booking.driver_id:
                await self.drivers.set_status(booking.driver_id, status="AVAILABLE")
        logger.info("Booking %s completed, distance=%s", booking_id, mileage - start)
        return await self.bookings.get(booking_id)

    async def cancel(self, booking_id: str) -> Booking:
        return await self._close(booking_id, "CANCELLED")

    async def reject(self, booking_id: str) -> Booking:
        return await self._close(booking_id, "REJECTED")

    async def _close(self, booking_id: str, terminal: str) -> Booking:
        async with transaction(self.db):
            await self._load_for(booking_id, terminal)
            await self.bookings.update_fields(booking_id, status=terminal)
        logger.info("Booking %s -> %s", booking_id, terminal)
        return await self.bookings.get(booking_id)
