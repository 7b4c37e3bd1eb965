"""Booking store: id lookups, status filters and guarded updates."""
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from govcar.models.booking import Booking
from govcar.models.vehicle import Vehicle


class BookingRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, booking_id: str) -> Booking | None:
        result = await self.db.execute(
            select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock(self, booking_id: str) -> Booking | None:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_ids(self, booking_ids: list[str]) -> list[Booking]:
        if not booking_ids:
            return []
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id.in_(booking_ids))
            .order_by(Booking.start_at.asc(), Booking.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_expired_assignments(self, cutoff: datetime) -> list[Booking]:
        """ASSIGNED, never acknowledged, and assigned before `cutoff`."""
        result = await self.db.execute(
            select(Booking)
            .where(
                Booking.status == "ASSIGNED",
                Booking.driver_accepted_at.is_(None),
                Booking.assigned_at < cutoff,
            )
            .order_by(Booking.assigned_at.asc(), Booking.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_pending_for_reminder(self, until: datetime) -> list[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(
                Booking.status.in_(("ASSIGNED", "STARTED")),
                Booking.driver_id.is_not(None),
                Booking.start_at <= until,
            )
            .order_by(Booking.start_at.asc(), Booking.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def assign(self, booking_ids: list[str], driver_id: str, assigned_at: datetime) -> int:
        """Batch assignment. Returns the number of rows written."""
        result = await self.db.execute(
            update(Booking)
            .where(Booking.id.in_(booking_ids))
            .values(
                driver_id=driver_id,
                status="ASSIGNED",
                assigned_at=assigned_at,
                driver_accepted_at=None,
                notified=False,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def reassign_if_unacknowledged(
        self,
        booking_id: str,
        expected_driver_id: str | None,
        new_driver_id: str,
        assigned_at: datetime,
    ) -> bool:
        """
        Timeout reassignment. Only writes when the booking is still ASSIGNED,
        unacknowledged and held by the driver the caller saw.
        """
        stmt = update(Booking).where(
            Booking.id == booking_id,
            Booking.status == "ASSIGNED",
            Booking.driver_accepted_at.is_(None),
        )
        if expected_driver_id is None:
            stmt = stmt.where(Booking.driver_id.is_(None))
        else:
            stmt = stmt.where(Booking.driver_id == expected_driver_id)
        result = await self.db.execute(
            stmt.values(driver_id=new_driver_id, assigned_at=assigned_at, notified=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_accepted(self, booking_id: str, accepted_at: datetime) -> None:
        await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(status="ACCEPTED", driver_accepted_at=accepted_at)
            .execution_options(synchronize_session=False)
        )

    async def mark_notified(self, booking_ids: list[str]) -> None:
        if not booking_ids:
            return
        await self.db.execute(
            update(Booking)
            .where(Booking.id.in_(booking_ids))
            .values(notified=True)
            .execution_options(synchronize_session=False)
        )

    async def update_fields(self, booking_id: str, **values) -> None:
        await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def add(self, booking: Booking) -> Booking:
        self.db.add(booking)
        await self.db.flush()
        return booking

    async def get_vehicle(self, vehicle_id: str | None) -> Vehicle | None:
        if not vehicle_id:
            return None
        return await self.db.get(Vehicle, vehicle_id)

    async def list_vehicles(self, vehicle_ids: list[str]) -> dict[str, Vehicle]:
        ids = [v for v in set(vehicle_ids) if v]
        if not ids:
            return {}
        result = await self.db.execute(select(Vehicle).where(Vehicle.id.in_(ids)))
        return {v.id: v for v in result.scalars().all()}
