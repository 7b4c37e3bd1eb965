"""
Drivers router - POST /v1/drivers (register), PATCH /v1/drivers/{id}/status,
                 POST /v1/drivers/{id}/link-line, POST /v1/drivers/{id}/accept
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from govcar.database import get_db, transaction
from govcar.exceptions import NotFound
from govcar.middleware.auth import get_current_admin, get_current_driver
from govcar.repositories.driver_repo import DriverRepository
from govcar.schemas.schemas import (
    AcceptJobRequest, AcceptJobResponse, DriverCreateRequest, DriverResponse, DriverStatusUpdateRequest,
    LinkChatChannelRequest,
)
from govcar.services.assignment import AssignmentService
from govcar.services.notifier import Notifier, get_notifier

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/drivers", tags=["Drivers"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=DriverResponse,
    dependencies=[Depends(get_current_admin)],
)
async def create_driver(
    payload: DriverCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Register a driver as active and AVAILABLE at the tail of the queue."""
    drivers = DriverRepository(db)
    async with transaction(db):
        driver = await drivers.create(payload.full_name, payload.phone, payload.chat_channel_id)
    logger.info("Registered driver=%s at queue_order=%s", driver.id, driver.queue_order)
    return DriverResponse.model_validate(driver)


@router.patch(
    "/{driver_id}/status",
    response_model=DriverResponse,
    dependencies=[Depends(get_current_admin)],
)
async def update_driver_status(
    driver_id: str,
    payload: DriverStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Set AVAILABLE / BUSY / OFF and/or the active flag. Queue position is untouched."""
    drivers = DriverRepository(db)
    async with transaction(db):
        updated = await drivers.set_status(
            driver_id,
            status=payload.status.value if payload.status else None,
            active=payload.active,
        )
        if not updated:
            raise NotFound("Driver", driver_id)
        driver = await drivers.get(driver_id)
    if driver is None:
        raise NotFound("Driver", driver_id)
    return DriverResponse.model_validate(driver)


@router.post(
    "/{driver_id}/link-line",
    response_model=DriverResponse,
    dependencies=[Depends(get_current_admin)],
)
async def link_line_account(
    driver_id: str,
    payload: LinkChatChannelRequest,
    db: AsyncSession = Depends(get_db),
):
    """Bind a LINE user id to the driver; any other driver holding it is unlinked."""
    drivers = DriverRepository(db)
    async with transaction(db):
        if not await drivers.link_chat_channel(driver_id, payload.chat_channel_id):
            raise NotFound("Driver", driver_id)
        driver = await drivers.get(driver_id)
    logger.info("Linked chat channel %s to driver=%s", payload.chat_channel_id, driver_id)
    return DriverResponse.model_validate(driver)


@router.post("/{driver_id}/accept", response_model=AcceptJobResponse)
async def accept_job(
    driver_id: str,
    payload: AcceptJobRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    current_driver: str = Depends(get_current_driver),
):
    """Driver acknowledges an assigned booking. Repeat calls are harmless."""
    if current_driver != driver_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token does not match driver")
    result = await AssignmentService(db, notifier).accept_job(payload.booking_id, driver_id)
    return AcceptJobResponse(booking_id=result.booking_id, outcome=result.outcome, warnings=result.warnings)
