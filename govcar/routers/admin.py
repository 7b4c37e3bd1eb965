"""
Admin router - driver assignment and queue administration.

POST /v1/admin/assign-next, POST /v1/admin/assign-manual,
GET /v1/admin/queue, GET /v1/admin/queue/next,
POST /v1/admin/queue/renumber, POST /v1/admin/queue/promote
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from govcar.database import get_db
from govcar.middleware.auth import get_current_admin
from govcar.middleware.idempotency import check_idempotency, store_idempotency_result
from govcar.schemas.schemas import (
    AssignManualRequest, AssignManualResponse, AssignNextRequest, AssignNextResponse,
    DriverResponse, NextDriverResponse, PromoteRequest, PromoteResponse, QueueEntry, RenumberResponse,
)
from govcar.services.assignment import AssignmentService
from govcar.services.notifier import Notifier, get_notifier
from govcar.services.queue import QueueService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/admin", tags=["Admin"], dependencies=[Depends(get_current_admin)])


@router.post("/assign-next", response_model=AssignNextResponse)
async def assign_next_driver(
    payload: AssignNextRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Assign the head of the queue to a booking and rotate that driver to the tail."""
    cached = await check_idempotency(request)
    if cached:
        return cached

    result = await AssignmentService(db, notifier).assign_next(payload.booking_id)
    response = AssignNextResponse(
        driver_id=result.driver_id,
        driver_name=result.driver_name,
        queue_order=result.queue_order,
        warnings=result.warnings,
    )
    await store_idempotency_result(request, 200, response.model_dump())
    return response


@router.post("/assign-manual", response_model=AssignManualResponse)
async def assign_manual_driver(
    payload: AssignManualRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Assign bookings to a chosen driver. An empty list only rotates the driver."""
    cached = await check_idempotency(request)
    if cached:
        return cached

    result = await AssignmentService(db, notifier).assign_manual(payload.booking_ids, payload.driver_id)
    response = AssignManualResponse(
        driver_id=result.driver_id,
        driver_name=result.driver_name,
        assigned_count=len(result.booking_ids),
        queue_order=result.queue_order,
        warnings=result.warnings,
    )
    await store_idempotency_result(request, 200, response.model_dump())
    return response


@router.get("/queue", response_model=list[DriverResponse])
async def list_queue(db: AsyncSession = Depends(get_db)):
    drivers = await QueueService(db).list_queue()
    return [DriverResponse.model_validate(d) for d in drivers]


@router.get("/queue/next", response_model=NextDriverResponse)
async def get_next_queue(db: AsyncSession = Depends(get_db)):
    driver = await QueueService(db).peek_next()
    if driver is None:
        return NextDriverResponse(driver=None)
    return NextDriverResponse(
        driver=QueueEntry(id=driver.id, full_name=driver.full_name, queue_order=driver.queue_order)
    )


@router.post("/queue/renumber", response_model=RenumberResponse)
async def renumber_queue(db: AsyncSession = Depends(get_db)):
    drivers = await QueueService(db).renumber()
    return RenumberResponse(
        renumbered=len(drivers),
        drivers=[QueueEntry(id=d.id, full_name=d.full_name, queue_order=d.queue_order) for d in drivers],
    )


@router.post("/queue/promote", response_model=PromoteResponse)
async def promote_driver(payload: PromoteRequest, db: AsyncSession = Depends(get_db)):
    driver, reordered = await QueueService(db).promote(payload.driver_id)
    return PromoteResponse(driver_id=driver.id, driver_name=driver.full_name, reordered=reordered)
