"""
Delivery Pydantic schemas.

Defines request and response models for delivery management.
"""

from pydantic import AfterValidator, BaseModel, Field
from datetime import datetime, timezone
from typing import Annotated, Optional, List
from backoffice.app.models.delivery_enums import DeliveryStatus, DeliveryMethod, DeliveryPriority


def _ensure_future(value: datetime) -> datetime:
    # Naive datetimes are taken as UTC
    as_utc = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if as_utc < datetime.now(timezone.utc):
        raise ValueError("Scheduled date cannot be in the past")
    return value


FutureDatetime = Annotated[datetime, AfterValidator(_ensure_future)]


class DeliveryLocation(BaseModel):
    """Where the delivery goes."""
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    country: str = Field(default="Nigeria", max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    landmark: Optional[str] = Field(None, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class DeliveryCreate(BaseModel):
    """Schema for creating a new delivery."""
    order_id: int = Field(..., gt=0, description="Order this delivery fulfils")
    client_id: Optional[int] = Field(None, gt=0, description="Defaults to the order's client")
    status: Optional[DeliveryStatus] = Field(None, description="Initial status, pending if omitted")
    tracking_number: Optional[str] = Field(None, min_length=1, max_length=32)
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY
    priority: DeliveryPriority = DeliveryPriority.STANDARD
    scheduled_date: Optional[FutureDatetime] = None
    time_slot: Optional[str] = Field(None, max_length=50)
    estimated_delivery_time: Optional[str] = Field(None, max_length=100)
    delivery_location: Optional[DeliveryLocation] = None
    delivery_fee: float = Field(default=0.0, ge=0, description="Delivery fee in Naira")
    is_free_delivery: bool = False
    delivery_notes: Optional[str] = Field(None, max_length=1000)
    recipient_name: Optional[str] = Field(None, max_length=200)
    recipient_phone: Optional[str] = Field(None, max_length=50)
    signature_required: bool = False


class DeliveryUpdate(BaseModel):
    """
    Schema for updating descriptive delivery fields.

    Status, order, client and tracking number are not accepted here.
    """
    delivery_method: Optional[DeliveryMethod] = None
    priority: Optional[DeliveryPriority] = None
    scheduled_date: Optional[FutureDatetime] = None
    time_slot: Optional[str] = Field(None, max_length=50)
    estimated_delivery_time: Optional[str] = Field(None, max_length=100)
    delivery_location: Optional[DeliveryLocation] = None
    delivery_fee: Optional[float] = Field(None, ge=0)
    is_free_delivery: Optional[bool] = None
    delivery_notes: Optional[str] = Field(None, max_length=1000)
    recipient_name: Optional[str] = Field(None, max_length=200)
    recipient_phone: Optional[str] = Field(None, max_length=50)
    signature_required: Optional[bool] = None
    proof_of_delivery: Optional[str] = Field(None, max_length=500)

    model_config = {"extra": "forbid"}


class DeliveryStatusUpdate(BaseModel):
    """Request body for a status transition."""
    status: DeliveryStatus
    note: Optional[str] = Field(None, max_length=500)


class DeliverySchedule(BaseModel):
    scheduled_date: FutureDatetime
    time_slot: Optional[str] = Field(None, max_length=50)


class DeliveryAssign(BaseModel):
    personnel_name: str = Field(..., min_length=1, max_length=200)
    personnel_phone: Optional[str] = Field(None, max_length=50)
    assignee_id: Optional[int] = Field(None, gt=0)


class DeliveryCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class DeliveryFeeRequest(BaseModel):
    distance_km: Optional[float] = Field(None, ge=0)
    weight_kg: Optional[float] = Field(None, ge=0)
    location: Optional[str] = Field(None, description="'remote' adds a surcharge")


class DeliveryFeeResponse(BaseModel):
    delivery_fee: float


class StatusHistoryEntryResponse(BaseModel):
    status: DeliveryStatus
    note: Optional[str]
    timestamp: datetime

    model_config = {"from_attributes": True}


class DeliveryResponse(BaseModel):
    """Schema for delivery response."""
    id: int
    order_id: int
    client_id: int
    tracking_number: str
    status: DeliveryStatus
    status_history: List[StatusHistoryEntryResponse]
    delivery_method: DeliveryMethod
    priority: DeliveryPriority
    scheduled_date: Optional[datetime]
    time_slot: Optional[str]
    estimated_delivery_time: Optional[str]
    delivered_at: Optional[datetime]
    delivery_location: Optional[DeliveryLocation]
    delivery_fee: float
    is_free_delivery: bool
    delivery_notes: Optional[str]
    recipient_name: Optional[str]
    recipient_phone: Optional[str]
    signature_required: bool
    proof_of_delivery: Optional[str]
    assignee_id: Optional[int]
    personnel_name: Optional[str]
    personnel_phone: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DeliveryListResponse(BaseModel):
    """Schema for paginated delivery list."""
    deliveries: List[DeliveryResponse]
    total: int
    page: int
    page_size: int
