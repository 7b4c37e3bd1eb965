"""
Bookings router - POST /v1/bookings, GET /v1/bookings/{id},
                  POST /v1/bookings/{id}/start|complete|cancel|reject
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from govcar.database import get_db, transaction
from govcar.exceptions import NotFound
from govcar.middleware.auth import get_current_admin, get_current_driver, get_current_user
from govcar.repositories.booking_repo import BookingRepository
from govcar.schemas.schemas import BookingCreateRequest, BookingResponse, MileageRequest
from govcar.services.lifecycle import BookingLifecycle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/bookings", tags=["Bookings"])


async def _require_own_booking(db: AsyncSession, booking_id: str, driver_id: str) -> None:
    async with transaction(db):
        booking = await BookingRepository(db).get(booking_id)
    if booking is None:
        raise NotFound("Booking", booking_id)
    if booking.driver_id != driver_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Booking belongs to another driver")


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=BookingResponse,
    dependencies=[Depends(get_current_user)],
)
async def create_booking(payload: BookingCreateRequest, db: AsyncSession = Depends(get_db)):
    booking = await BookingLifecycle(db).create(payload)
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}", response_model=BookingResponse, dependencies=[Depends(get_current_user)])
async def get_booking(booking_id: str, db: AsyncSession = Depends(get_db)):
    async with transaction(db):
        booking = await BookingRepository(db).get(booking_id)
    if booking is None:
        raise NotFound("Booking", booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/start", response_model=BookingResponse)
async def start_trip(
    booking_id: str,
    payload: MileageRequest,
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    """Driver records the odometer reading at departure."""
    await _require_own_booking(db, booking_id, driver_id)
    booking = await BookingLifecycle(db).start(booking_id, payload.mileage)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_trip(
    booking_id: str,
    payload: MileageRequest,
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    """Driver records the closing odometer reading; the booking completes."""
    await _require_own_booking(db, booking_id, driver_id)
    booking = await BookingLifecycle(db).complete(booking_id, payload.mileage)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse, dependencies=[Depends(get_current_user)])
async def cancel_booking(booking_id: str, db: AsyncSession = Depends(get_db)):
    booking = await BookingLifecycle(db).cancel(booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/reject", response_model=BookingResponse, dependencies=[Depends(get_current_admin)])
async def reject_booking(booking_id: str, db: AsyncSession = Depends(get_db)):
    booking = await BookingLifecycle(db).reject(booking_id)
    return BookingResponse.model_validate(booking)
