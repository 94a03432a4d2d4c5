"""
Delivery Management API Endpoints.

Thin HTTP wrappers over DeliveryService. Domain errors (ValidationError,
NotFoundError, ConflictError) are turned into 400/404/409 responses by the
global exception handlers.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.dependencies import get_delivery_service
from backoffice.app.db.session import get_db
from backoffice.app.models.delivery_enums import DeliveryStatus
from backoffice.app.schemas.delivery import (
    DeliveryCreate, DeliveryUpdate, DeliveryStatusUpdate, DeliverySchedule,
    DeliveryAssign, DeliveryCancel, DeliveryFeeRequest, DeliveryFeeResponse,
    DeliveryResponse, DeliveryListResponse, StatusHistoryEntryResponse
)
from backoffice.app.services.audit import log_event, AuditAction
from backoffice.app.services.delivery_service import DeliveryService

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])

ENTITY = "delivery"


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _page(deliveries, total: int, page: int, page_size: int) -> DeliveryListResponse:
    return DeliveryListResponse(
        deliveries=[DeliveryResponse.model_validate(d) for d in deliveries],
        total=total,
        page=page,
        page_size=page_size
    )


@router.post("", response_model=DeliveryResponse, status_code=status.HTTP_201_CREATED)
async def create_delivery(
    request: Request,
    delivery_data: DeliveryCreate,
    service: DeliveryService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a delivery for an order.

    Validates:
    - Order exists
    - Order has no delivery yet
    - Tracking number (if given) is unused
    """
    delivery = await service.create_delivery(delivery_data)

    await log_event(
        db=db,
        action=AuditAction.DELIVERY_CREATED,
        entity_type=ENTITY,
        entity_id=delivery.id,
        metadata={
            "order_id": delivery.order_id,
            "tracking_number": delivery.tracking_number,
            "status": delivery.status.value
        },
        ip_address=_client_ip(request)
    )

    return delivery


@router.get("", response_model=DeliveryListResponse)
async def list_deliveries(
    status_filter: Optional[DeliveryStatus] = Query(None, alias="status"),
    client_id: Optional[int] = Query(None, gt=0),
    start_date: Optional[datetime] = Query(None, description="Scheduled on or after"),
    end_date: Optional[datetime] = Query(None, description="Scheduled on or before"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: DeliveryService = Depends(get_delivery_service)
):
    """List deliveries, newest first, with optional filters."""
    deliveries, total = await service.list_deliveries(
        status=status_filter,
        client_id=client_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size
    )
    return _page(deliveries, total, page, page_size)


@router.get("/pending", response_model=DeliveryListResponse)
async def list_pending_deliveries(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: DeliveryService = Depends(get_delivery_service)
):
    deliveries, total = await service.get_pending_deliveries(page=page, page_size=page_size)
    return _page(deliveries, total, page, page_size)


@router.post("/fee-quote", response_model=DeliveryFeeResponse)
async def quote_delivery_fee(fee_request: DeliveryFeeRequest):
    """Quote a delivery fee from distance, weight and location."""
    return DeliveryFeeResponse(
        delivery_fee=DeliveryService.calculate_delivery_fee(
            distance_km=fee_request.distance_km,
            weight_kg=fee_request.weight_kg,
            location=fee_request.location
        )
    )


@router.get("/order/{order_id}", response_model=DeliveryResponse)
async def get_delivery_by_order(
    order_id: int = Path(..., description="Order ID"),
    service: DeliveryService = Depends(get_delivery_service)
):
    return await service.get_delivery_by_order(order_id)


@router.get("/client/{client_id}", response_model=DeliveryListResponse)
async def list_client_deliveries(
    client_id: int = Path(..., description="Client ID"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: DeliveryService = Depends(get_delivery_service)
):
    deliveries, total = await service.get_deliveries_by_client(client_id, page=page, page_size=page_size)
    return _page(deliveries, total, page, page_size)


@router.get("/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(
    delivery_id: int = Path(..., description="Delivery ID"),
    service: DeliveryService = Depends(get_delivery_service)
):
    return await service.get_delivery(delivery_id)


@router.get("/{delivery_id}/history", response_model=List[StatusHistoryEntryResponse])
async def get_delivery_history(
    delivery_id: int = Path(..., description="Delivery ID"),
    service: DeliveryService = Depends(get_delivery_service)
):
    """Status history, oldest first."""
    delivery = await service.get_delivery(delivery_id)
    return delivery.status_history


@router.patch("/{delivery_id}", response_model=DeliveryResponse)
async def update_delivery(
    request: Request,
    update_data: DeliveryUpdate,
    delivery_id: int = Path(..., description="Delivery ID"),
    service: DeliveryService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db)
):
    """Update descriptive fields. Use the status endpoints to change status."""
    delivery = await service.update_delivery(delivery_id, update_data)

    await log_event(
        db=db,
        action=AuditAction.DELIVERY_UPDATED,
        entity_type=ENTITY,
        entity_id=delivery.id,
        metadata={"fields": sorted(update_data.model_dump(exclude_unset=True))},
        ip_address=_client_ip(request)
    )

    return delivery


@router.patch("/{delivery_id}/status", response_model=DeliveryResponse)
async def update_delivery_status(
    request: Request,
    status_update: DeliveryStatusUpdate,
    delivery_id: int = Path(..., description="Delivery ID"),
    service: DeliveryService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a delivery to a new status.

    Returns 400 if the transition table does not allow the move.
    """
    delivery = await service.update_delivery_status(delivery_id, status_update.status, status_update.note)

    await log_event(
        db=db,
        action=AuditAction.DELIVERY_STATUS_CHANGED,
        entity_type=ENTITY,
        entity_id=delivery.id,
        metadata={"status": delivery.status.value, "note": status_update.note},
        ip_address=_client_ip(request)
    )

    return delivery


@router.post("/{delivery_id}/schedule", response_model=DeliveryResponse)
async def schedule_delivery(
    request: Request,
    schedule: DeliverySchedule,
    delivery_id: int = Path(..., description="Delivery ID"),
    service: DeliveryService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db)
):
    delivery = await service.schedule_delivery(delivery_id, schedule.scheduled_date, schedule.time_slot)

    await log_event(
        db=db,
        action=AuditAction.DELIVERY_SCHEDULED,
        entity_type=ENTITY,
        entity_id=delivery.id,
        metadata={
            "scheduled_date": schedule.scheduled_date.isoformat(),
            "time_slot": schedule.time_slot
        },
        ip_address=_client_ip(request)
    )

    return delivery


@router.post("/{delivery_id}/assign", response_model=DeliveryResponse)
async def assign_delivery(
    request: Request,
    assignment: DeliveryAssign,
    delivery_id: int = Path(..., description="Delivery ID"),
    service: DeliveryService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db)
):
    delivery = await service.assign_delivery(
        delivery_id,
        personnel_name=assignment.personnel_name,
        personnel_phone=assignment.personnel_phone,
        assignee_id=assignment.assignee_id
    )

    await log_event(
        db=db,
        action=AuditAction.DELIVERY_ASSIGNED,
        entity_type=ENTITY,
        entity_id=delivery.id,
        metadata=assignment.model_dump(),
        ip_address=_client_ip(request)
    )

    return delivery


@router.post("/{delivery_id}/cancel", response_model=DeliveryResponse)
async def cancel_delivery(
    request: Request,
    cancellation: DeliveryCancel,
    delivery_id: int = Path(..., description="Delivery ID"),
    service: DeliveryService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db)
):
    delivery = await service.cancel_delivery(delivery_id, cancellation.reason)

    await log_event(
        db=db,
        action=AuditAction.DELIVERY_CANCELLED,
        entity_type=ENTITY,
        entity_id=delivery.id,
        metadata={"reason": cancellation.reason},
        ip_address=_client_ip(request)
    )

    return delivery
