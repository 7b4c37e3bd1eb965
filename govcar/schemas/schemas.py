from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class BookingStatusEnum(str, Enum):
    REQUESTED = "REQUESTED"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class DriverStatusEnum(str, Enum):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFF = "OFF"


class AcceptOutcomeEnum(str, Enum):
    accepted = "accepted"
    already_accepted = "already_accepted"
    not_found = "not_found"
    not_assigned = "not_assigned"
    not_acceptable = "not_acceptable"


# ---------------------------------------------------------------------------
# Driver schemas
# ---------------------------------------------------------------------------

class DriverCreateRequest(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=20)
    chat_channel_id: Optional[str] = Field(default=None, max_length=64)


class LinkChatChannelRequest(BaseModel):
    chat_channel_id: str = Field(
        ...,
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("chat_channel_id", "chatChannelId", "line_user_id"),
    )


class DriverStatusUpdateRequest(BaseModel):
    status: Optional[DriverStatusEnum] = None
    active: Optional[bool] = None


class DriverResponse(BaseModel):
    id: str
    full_name: str
    phone: Optional[str] = None
    active: bool
    status: DriverStatusEnum
    queue_order: int
    chat_channel_id: Optional[str] = None

    model_config = {"from_attributes": True}


class QueueEntry(BaseModel):
    id: str
    full_name: str
    queue_order: int


class NextDriverResponse(BaseModel):
    driver: Optional[QueueEntry] = None


class RenumberResponse(BaseModel):
    renumbered: int
    drivers: list[QueueEntry]


class PromoteRequest(BaseModel):
    driver_id: str = Field(..., validation_alias=AliasChoices("driver_id", "driverId"))


class PromoteResponse(BaseModel):
    driver_id: str
    driver_name: str
    reordered: bool


class ResetDriversResponse(BaseModel):
    reset_count: int


# ---------------------------------------------------------------------------
# Booking schemas
# ---------------------------------------------------------------------------

class BookingCreateRequest(BaseModel):
    requester_name: str = Field(..., min_length=1, max_length=255)
    purpose: Optional[str] = None
    destination: Optional[str] = Field(default=None, max_length=255)
    passenger_count: int = Field(default=1, ge=1, le=60)
    start_at: datetime
    end_at: Optional[datetime] = None
    vehicle_id: Optional[str] = None


class BookingResponse(BaseModel):
    id: str
    request_code: str
    requester_name: str
    purpose: Optional[str] = None
    destination: Optional[str] = None
    start_at: datetime
    end_at: Optional[datetime] = None
    vehicle_id: Optional[str] = None
    driver_id: Optional[str] = None
    status: BookingStatusEnum
    assigned_at: Optional[datetime] = None
    driver_accepted_at: Optional[datetime] = None
    notified: bool
    start_mileage: Optional[int] = None
    end_mileage: Optional[int] = None
    distance: Optional[int] = None

    model_config = {"from_attributes": True}


class MileageRequest(BaseModel):
    mileage: int = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Assignment schemas
# ---------------------------------------------------------------------------

class AssignNextRequest(BaseModel):
    booking_id: str = Field(..., validation_alias=AliasChoices("booking_id", "bookingId"))


class AssignNextResponse(BaseModel):
    driver_id: str
    driver_name: str
    queue_order: int
    warnings: list[str] = []


class AssignManualRequest(BaseModel):
    booking_ids: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("booking_ids", "bookingIds")
    )
    driver_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("driver_id", "driverId"))


class AssignManualResponse(BaseModel):
    success: bool = True
    driver_id: str
    driver_name: str
    assigned_count: int
    queue_order: int
    warnings: list[str] = []


class AcceptJobRequest(BaseModel):
    booking_id: str = Field(..., validation_alias=AliasChoices("booking_id", "bookingId"))


class AcceptJobResponse(BaseModel):
    booking_id: str
    outcome: AcceptOutcomeEnum
    warnings: list[str] = []


# ---------------------------------------------------------------------------
# Cron schemas
# ---------------------------------------------------------------------------

class SweepResponse(BaseModel):
    expired_count: int = 0
    reassigned_count: int = 0
    failed_count: int = 0
    message: str
    warnings: list[str] = []


class ReminderResponse(BaseModel):
    drivers_notified: int
    total_pending_jobs: int
    warnings: list[str] = []
