"""Queue administration: peek, renumber, promote, daily reset."""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from govcar.database import transaction
from govcar.exceptions import NotFound
from govcar.models.driver import Driver
from govcar.repositories.driver_repo import DriverRepository

logger = logging.getLogger(__name__)


class QueueService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.drivers = DriverRepository(db)

    async def peek_next(self) -> Driver | None:
        async with transaction(self.db):
            return await self.drivers.first_available()

    async def list_queue(self) -> list[Driver]:
        async with transaction(self.db):
            return await self.drivers.list_active()

    async def renumber(self) -> list[Driver]:
        """
        Compact queue_order of all active drivers to 1..N, keeping their
        current order. Equal positions keep the store's id tie-break.
        """
        async with transaction(self.db):
            await self.drivers.lock_queue()
            drivers = await self.drivers.list_active()
            await self.drivers.set_queue_orders({d.id: i for i, d in enumerate(drivers, start=1)})
            drivers = await self.drivers.list_active()
        logger.info("Renumbered %d active driver(s)", len(drivers))
        return drivers

    async def promote(self, driver_id: str) -> tuple[Driver, bool]:
        """
        Make a driver the next pick. Every available driver ahead of it is
        rotated to the tail in its current order, so the cycle is preserved.
        Returns (driver, reordered).
        """
        async with transaction(self.db):
            await self.drivers.lock_queue()
            queue = await self.drivers.list_available()
            index = next((i for i, d in enumerate(queue) if d.id == driver_id), None)
            if index is None:
                raise NotFound("Available driver", driver_id)
            for ahead in queue[:index]:
                await self.drivers.rotate(ahead.id)
        if index:
            logger.info("Promoted driver=%s past %d driver(s)", driver_id, index)
        return queue[index], index > 0

    async def reset_busy(self) -> int:
        async with transaction(self.db):
            count = await self.drivers.release_busy()
        logger.info("Reset %d BUSY driver(s) to AVAILABLE", count)
        return count
