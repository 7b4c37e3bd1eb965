"""
Cron router - scheduler-triggered jobs.

POST /v1/cron/sweep, POST /v1/cron/reset-drivers, POST /v1/cron/remind-pending
"""
import logging
import uuid

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from govcar.config import get_settings
from govcar.database import get_db
from govcar.middleware.auth import verify_cron_secret
from govcar.redis_client import acquire_lock, get_redis, release_lock
from govcar.schemas.schemas import ReminderResponse, ResetDriversResponse, SweepResponse
from govcar.services.notifier import Notifier, get_notifier
from govcar.services.queue import QueueService
from govcar.services.reminders import remind_pending
from govcar.services.sweeper import TimeoutSweeper

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter(prefix="/v1/cron", tags=["Cron"], dependencies=[Depends(verify_cron_secret)])

SWEEP_LOCK_KEY = "cron:sweep:lock"


@router.post("/sweep", response_model=SweepResponse)
async def sweep_timeouts(
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    redis: aioredis.Redis = Depends(get_redis),
):
    """Reassign bookings nobody acknowledged within the timeout."""
    owner = uuid.uuid4().hex
    if not await acquire_lock(redis, SWEEP_LOCK_KEY, owner, settings.sweep_lock_ttl_seconds):
        logger.warning("Sweep skipped: another sweep holds the lock")
        return SweepResponse(message="Another sweep is already running")
    try:
        summary = await TimeoutSweeper(db, notifier).sweep()
    finally:
        await release_lock(redis, SWEEP_LOCK_KEY, owner)

    return SweepResponse(
        expired_count=summary.expired_count,
        reassigned_count=summary.reassigned_count,
        failed_count=summary.failed_count,
        message=summary.message,
        warnings=summary.warnings,
    )


@router.post("/reset-drivers", response_model=ResetDriversResponse)
async def reset_drivers(db: AsyncSession = Depends(get_db)):
    """Morning reset: BUSY drivers back to AVAILABLE."""
    return ResetDriversResponse(reset_count=await QueueService(db).reset_busy())


@router.post("/remind-pending", response_model=ReminderResponse)
async def remind_pending_jobs(
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    summary = await remind_pending(db, notifier)
    return ReminderResponse(
        drivers_notified=summary.drivers_notified,
        total_pending_jobs=summary.total_pending_jobs,
        warnings=summary.warnings,
    )
