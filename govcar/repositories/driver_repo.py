"""
Driver queue store.

Queue order is shared mutable state. Every writer of `queue_order` goes
through `lock_queue()` first; on PostgreSQL that is a transaction-scoped
advisory lock, so concurrent rotations never read the same max.
SQLite serialises writers on its own.
"""
import logging

from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from govcar.exceptions import NotFound
from govcar.models.driver import Driver

logger = logging.getLogger(__name__)

QUEUE_LOCK_KEY = 7_340_001


class DriverRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, driver_id: str) -> Driver | None:
        result = await self.db.execute(
            select(Driver).where(Driver.id == driver_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_chat_channel(self, chat_channel_id: str) -> Driver | None:
        result = await self.db.execute(
            select(Driver)
            .where(Driver.chat_channel_id == chat_channel_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock(self, driver_id: str) -> Driver | None:
        """Re-read a driver row under FOR UPDATE (no-op lock on SQLite)."""
        result = await self.db.execute(
            select(Driver)
            .where(Driver.id == driver_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_available(self) -> list[Driver]:
        """Active + AVAILABLE drivers, head of queue first. Ties broken by id."""
        result = await self.db.execute(
            select(Driver)
            .where(Driver.active.is_(True), Driver.status == "AVAILABLE")
            .order_by(Driver.queue_order.asc(), Driver.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def first_available(self) -> Driver | None:
        result = await self.db.execute(
            select(Driver)
            .where(Driver.active.is_(True), Driver.status == "AVAILABLE")
            .order_by(Driver.queue_order.asc(), Driver.id.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def head_id(self) -> str | None:
        """Id of the current queue head, read straight from the table."""
        result = await self.db.execute(
            select(Driver.id)
            .where(Driver.active.is_(True), Driver.status == "AVAILABLE")
            .order_by(Driver.queue_order.asc(), Driver.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_active(self) -> list[Driver]:
        result = await self.db.execute(
            select(Driver)
            .where(Driver.active.is_(True))
            .order_by(Driver.queue_order.asc(), Driver.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_by_ids(self, driver_ids: list[str]) -> dict[str, Driver]:
        if not driver_ids:
            return {}
        result = await self.db.execute(
            select(Driver).where(Driver.id.in_(driver_ids)).execution_options(populate_existing=True)
        )
        return {d.id: d for d in result.scalars().all()}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def lock_queue(self) -> None:
        if self.db.get_bind().dialect.name == "postgresql":
            await self.db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": QUEUE_LOCK_KEY})

    def _tail_position(self):
        other = aliased(Driver)
        return select(func.coalesce(func.max(other.queue_order), 0) + 1).scalar_subquery()

    async def rotate(self, driver_id: str) -> int:
        """
        Move a driver to the back of the queue:
        queue_order = max(queue_order over all drivers) + 1, in one statement.
        Returns the new position. Raises NotFound for an unknown id.
        """
        await self.lock_queue()
        result = await self.db.execute(
            update(Driver)
            .where(Driver.id == driver_id)
            .values(queue_order=self._tail_position())
            .returning(Driver.queue_order)
            .execution_options(synchronize_session=False)
        )
        new_order = result.scalar_one_or_none()
        if new_order is None:
            raise NotFound("Driver", driver_id)
        logger.info("Rotated driver=%s to queue_order=%s", driver_id, new_order)
        return new_order

    async def create(self, full_name: str, phone: str | None, chat_channel_id: str | None) -> Driver:
        """Register a driver at the tail of the queue."""
        await self.lock_queue()
        if chat_channel_id:
            await self.release_chat_channel(chat_channel_id)
        tail = (await self.db.execute(select(func.coalesce(func.max(Driver.queue_order), 0) + 1))).scalar_one()
        driver = Driver(
            full_name=full_name,
            phone=phone,
            chat_channel_id=chat_channel_id,
            active=True,
            status="AVAILABLE",
            queue_order=tail,
        )
        self.db.add(driver)
        await self.db.flush()
        return driver

    async def release_chat_channel(self, chat_channel_id: str, keep_driver_id: str | None = None) -> int:
        """Unlink a LINE user id from whichever driver holds it."""
        stmt = update(Driver).where(Driver.chat_channel_id == chat_channel_id)
        if keep_driver_id is not None:
            stmt = stmt.where(Driver.id != keep_driver_id)
        result = await self.db.execute(
            stmt.values(chat_channel_id=None).execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info("Unlinked chat channel %s from %d driver(s)", chat_channel_id, result.rowcount)
        return result.rowcount

    async def link_chat_channel(self, driver_id: str, chat_channel_id: str) -> bool:
        """
        Bind a LINE user id to a driver. The previous holder, if any, is
        unlinked first. A linked driver is active and AVAILABLE.
        """
        await self.release_chat_channel(chat_channel_id, keep_driver_id=driver_id)
        result = await self.db.execute(
            update(Driver)
            .where(Driver.id == driver_id)
            .values(chat_channel_id=chat_channel_id, active=True, status="AVAILABLE")
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def set_queue_orders(self, orders: dict[str, int]) -> None:
        await self.lock_queue()
        for driver_id, position in orders.items():
            await self.db.execute(
                update(Driver)
                .where(Driver.id == driver_id)
                .values(queue_order=position)
                .execution_options(synchronize_session=False)
            )

    async def set_status(self, driver_id: str, status: str | None = None, active: bool | None = None) -> bool:
        values: dict = {}
        if status is not None:
            values["status"] = status
        if active is not None:
            values["active"] = active
        if not values:
            return True
        result = await self.db.execute(
            update(Driver)
            .where(Driver.id == driver_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def release_busy(self) -> int:
        """BUSY -> AVAILABLE for every driver; OFF drivers are left alone."""
        result = await self.db.execute(
            update(Driver)
            .where(Driver.status == "BUSY")
            .values(status="AVAILABLE")
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
