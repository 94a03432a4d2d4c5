"""
Delivery Service (Domain Logic).

Owns the delivery lifecycle: creation, detail updates and the status
workflow. Every write to an existing delivery runs under a per-delivery lock
and commits before any side effect (notification, domain event) starts.

Transition flow (update_delivery_status):
1. Load the delivery (NotFoundError if absent)
2. Validate against the transition table (ValidationError, nothing written)
3. Append the history entry, set status and updated_at
4. Persist (version-guarded UPDATE)
5. Notify the client, best-effort
6. Emit delivery.status.updated
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.app.core.locking import delivery_locks
from backoffice.app.domain.delivery.fees import calculate_delivery_fee
from backoffice.app.domain.delivery.tracking import generate_tracking_number
from backoffice.app.domain.delivery.transitions import validate_status_transition
from backoffice.app.domain.events import EventDispatcher, EventType, event_dispatcher
from backoffice.app.models.delivery import Delivery
from backoffice.app.models.delivery_enums import DeliveryStatus
from backoffice.app.models.delivery_status_entry import DeliveryStatusEntry
from backoffice.app.repositories.delivery_repository import DeliveryRepository
from backoffice.app.repositories.order_repository import OrderRepository, ClientRepository
from backoffice.app.schemas.delivery import DeliveryCreate, DeliveryUpdate, DeliverySchedule
from backoffice.app.services.delivery_notifications import DeliveryNotifier

logger = logging.getLogger("backoffice.deliveries")

IMMUTABLE_FIELDS = frozenset({"order_id", "client_id", "tracking_number"})
NON_NULLABLE_FIELDS = frozenset({
    "delivery_method", "priority", "delivery_fee", "is_free_delivery", "signature_required",
})
CREATED_NOTE = "Delivery created"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse(schema: type, payload: Union[BaseModel, Dict[str, Any]], message: str):
    if isinstance(payload, schema):
        return payload
    try:
        return schema.model_validate(payload)
    except SchemaValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(message, errors=errors)


class DeliveryService:

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[DeliveryNotifier] = None,
        events: EventDispatcher = event_dispatcher,
        locks=delivery_locks
    ):
        self.db = db
        self.deliveries = DeliveryRepository(db)
        self.orders = OrderRepository(db)
        self.clients = ClientRepository(db)
        self.notifier = notifier
        self.events = events
        self.locks = locks

    # ---- creation ----

    async def create_delivery(self, payload: Union[DeliveryCreate, Dict[str, Any]]) -> Delivery:
        """
        Create a delivery for a confirmed order.

        Raises:
            ValidationError: invalid payload, client_id not the order's client,
                or the order already has a delivery
            NotFoundError: the order or the given client does not exist
            ConflictError: a concurrent insert took the tracking number
        """
        data = _parse(DeliveryCreate, payload, "Delivery validation failed")

        order = await self.orders.find_by_id(data.order_id)
        if not order:
            raise NotFoundError("Order", data.order_id)
        order_id = order.id
        client_id = await self._resolve_client_id(data.client_id, order.client_id)

        async with self.locks.hold(f"order:{order_id}"):
            if await self.deliveries.find_by_order_id(order_id):
                raise ValidationError(
                    "Delivery already exists for this order",
                    details={"order_id": order_id}
                )

            if data.tracking_number:
                if await self.deliveries.tracking_number_exists(data.tracking_number):
                    raise ValidationError(
                        f"Tracking number '{data.tracking_number}' is already in use",
                        details={"tracking_number": data.tracking_number}
                    )
                tracking_number = data.tracking_number
            else:
                tracking_number = await self._allocate_tracking_number()

            status = data.status or DeliveryStatus.PENDING
            now = _utcnow()
            fields = data.model_dump(
                exclude={"order_id", "client_id", "status", "tracking_number", "delivery_location"}
            )

            delivery = Delivery(
                **fields,
                order_id=order_id,
                client_id=client_id,
                tracking_number=tracking_number,
                status=status,
                delivery_location=data.delivery_location.model_dump() if data.delivery_location else None,
                delivered_at=now if status == DeliveryStatus.DELIVERED else None,
                created_at=now,
                updated_at=now,
                status_history=[DeliveryStatusEntry(status=status, note=CREATED_NOTE, timestamp=now)],
            )

            try:
                await self.deliveries.add(delivery)
                delivery_id = delivery.id
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                # Lost a race with a creator in another process
                if await self.deliveries.find_by_order_id(order_id):
                    raise ValidationError(
                        "Delivery already exists for this order",
                        details={"order_id": order_id}
                    )
                raise ConflictError(
                    "Delivery could not be saved due to a concurrent write",
                    details={"order_id": order_id}
                )

            delivery = await self.deliveries.find_by_id(delivery_id)

        logger.info(
            "Delivery %s created for order %s (%s)", delivery.id, order_id, delivery.tracking_number
        )
        await self.events.dispatch(EventType.DELIVERY_CREATED, {"delivery": delivery, "order_id": order_id})
        return delivery

    async def _resolve_client_id(self, requested: Optional[int], order_client_id: int) -> int:
        if requested is None:
            return order_client_id
        if not await self.clients.find_by_id(requested):
            raise NotFoundError("Client", requested)
        if requested != order_client_id:
            raise ValidationError(
                "client_id does not match the order's client",
                details={"client_id": requested, "order_client_id": order_client_id}
            )
        return requested

    async def _allocate_tracking_number(self) -> str:
        for _ in range(settings.tracking_number_attempts):
            candidate = generate_tracking_number()
            if not await self.deliveries.tracking_number_exists(candidate):
                return candidate
        raise ConflictError("Could not allocate a unique tracking number")

    # ---- status workflow ----

    async def update_delivery_status(
        self,
        delivery_id: int,
        new_status: Union[DeliveryStatus, str],
        note: Optional[str] = None
    ) -> Delivery:
        """
        Move a delivery to ``new_status`` and record it in the history.

        Raises:
            NotFoundError: unknown delivery
            ValidationError: transition not allowed from the current status
            ConflictError: lock wait timed out, or a concurrent write won
        """
        delivery = await self._transition(delivery_id, new_status, note)
        await self._after_transition(delivery, note)
        return delivery

    async def schedule_delivery(
        self,
        delivery_id: int,
        scheduled_date: datetime,
        time_slot: Optional[str] = None
    ) -> Delivery:
        """Set the delivery date and move the delivery to scheduled."""
        data = _parse(
            DeliverySchedule,
            {"scheduled_date": scheduled_date, "time_slot": time_slot},
            "Delivery schedule validation failed"
        )
        note = f"Scheduled for {data.scheduled_date:%Y-%m-%d %H:%M}"
        if data.time_slot:
            note = f"{note} ({data.time_slot})"

        delivery = await self._transition(
            delivery_id,
            DeliveryStatus.SCHEDULED,
            note,
            extra={"scheduled_date": data.scheduled_date, "time_slot": data.time_slot},
        )
        await self._after_transition(delivery, note)
        return delivery

    async def cancel_delivery(self, delivery_id: int, reason: Optional[str] = None) -> Delivery:
        """Cancel through the transition table; delivered or in-transit deliveries cannot be cancelled."""
        delivery = await self.update_delivery_status(delivery_id, DeliveryStatus.CANCELLED, reason)
        await self.events.dispatch(EventType.DELIVERY_CANCELLED, {
            "delivery_id": delivery.id,
            "reason": reason,
            "delivery": delivery,
        })
        return delivery

    async def _transition(
        self,
        delivery_id: int,
        new_status: Union[DeliveryStatus, str],
        note: Optional[str],
        extra: Optional[Dict[str, Any]] = None
    ) -> Delivery:

        async def apply(delivery: Delivery) -> None:
            validate_status_transition(delivery.status, new_status)
            target = DeliveryStatus(new_status)
            now = _utcnow()

            delivery.status_history.append(DeliveryStatusEntry(
                status=target,
                note=note if note is not None else f"Status updated to {target.value}",
                timestamp=now,
            ))
            patch = {"status": target, "updated_at": now, **(extra or {})}
            if target == DeliveryStatus.DELIVERED:
                patch["delivered_at"] = now
            await self.deliveries.update(delivery, patch)

        return await self._write_locked(delivery_id, apply)

    async def _after_transition(self, delivery: Delivery, note: Optional[str]) -> None:
        logger.info("Delivery %s moved to %s", delivery.id, delivery.status.value)

        if self.notifier is not None:
            try:
                await self.notifier.notify_status_change(delivery, delivery.status)
            except Exception:
                logger.exception("Error sending delivery notification for delivery %s", delivery.id)

        await self.events.dispatch(EventType.DELIVERY_STATUS_UPDATED, {
            "delivery_id": delivery.id,
            "new_status": delivery.status,
            "note": note,
            "delivery": delivery,
        })

    # ---- detail updates ----

    async def update_delivery(
        self,
        delivery_id: int,
        updates: Union[DeliveryUpdate, Dict[str, Any]]
    ) -> Delivery:
        """
        Update descriptive fields. Status, order, client and tracking number
        are rejected.
        """
        if isinstance(updates, dict):
            if "status" in updates:
                raise ValidationError("Delivery status can only be changed through a status transition")
            immutable = sorted(IMMUTABLE_FIELDS & updates.keys())
            if immutable:
                raise ValidationError(
                    f"{', '.join(immutable)} cannot be updated",
                    details={"fields": immutable}
                )

        data = _parse(DeliveryUpdate, updates, "Delivery update validation failed")
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        nulled = sorted(field for field in NON_NULLABLE_FIELDS & changes.keys() if changes[field] is None)
        if nulled:
            raise ValidationError(f"{', '.join(nulled)} cannot be null", details={"fields": nulled})

        if "delivery_location" in changes and data.delivery_location is not None:
            changes["delivery_location"] = data.delivery_location.model_dump()

        async def apply(delivery: Delivery) -> None:
            await self.deliveries.update(delivery, changes)

        delivery = await self._write_locked(delivery_id, apply)
        await self.events.dispatch(EventType.DELIVERY_UPDATED, {
            "delivery_id": delivery.id,
            "updates": changes,
            "delivery": delivery,
        })
        return delivery

    async def assign_delivery(
        self,
        delivery_id: int,
        personnel_name: str,
        personnel_phone: Optional[str] = None,
        assignee_id: Optional[int] = None
    ) -> Delivery:
        """Record who carries the delivery."""
        if not personnel_name:
            raise ValidationError("Delivery personnel name is required")

        async def apply(delivery: Delivery) -> None:
            await self.deliveries.update(delivery, {
                "personnel_name": personnel_name,
                "personnel_phone": personnel_phone,
                "assignee_id": assignee_id,
            })

        delivery = await self._write_locked(delivery_id, apply)
        await self.events.dispatch(EventType.DELIVERY_ASSIGNED, {
            "delivery_id": delivery.id,
            "assignee_id": assignee_id,
            "delivery": delivery,
        })
        return delivery

    async def _write_locked(
        self,
        delivery_id: int,
        mutate: Callable[[Delivery], Awaitable[None]]
    ) -> Delivery:
        """Load, mutate and commit one delivery while holding its lock."""
        async with self.locks.hold(delivery_id):
            try:
                delivery = await self.get_delivery(delivery_id)
                await mutate(delivery)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
            return await self.deliveries.find_by_id(delivery_id)

    # ---- queries ----

    async def get_delivery(self, delivery_id: int) -> Delivery:
        delivery = await self.deliveries.find_by_id(delivery_id)
        if not delivery:
            raise NotFoundError("Delivery", delivery_id)
        return delivery

    async def get_delivery_by_order(self, order_id: int) -> Delivery:
        delivery = await self.deliveries.find_by_order_id(order_id)
        if not delivery:
            raise NotFoundError("Delivery for order", order_id)
        return delivery

    async def list_deliveries(
        self,
        status: Optional[DeliveryStatus] = None,
        client_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Delivery], int]:
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        return await self.deliveries.find_all(
            status=status,
            client_id=client_id,
            start_date=start_date,
            end_date=end_date,
            offset=(page - 1) * page_size,
            limit=page_size,
        )

    async def get_pending_deliveries(self, page: int = 1, page_size: int = 20) -> Tuple[List[Delivery], int]:
        return await self.list_deliveries(status=DeliveryStatus.PENDING, page=page, page_size=page_size)

    async def get_deliveries_by_client(
        self,
        client_id: int,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Delivery], int]:
        client = await self.clients.find_by_id(client_id)
        if not client:
            raise NotFoundError("Client", client_id)
        return await self.list_deliveries(client_id=client_id, page=page, page_size=page_size)

    @staticmethod
    def calculate_delivery_fee(
        distance_km: Optional[float] = None,
        weight_kg: Optional[float] = None,
        location: Optional[str] = None
    ) -> float:
        return calculate_delivery_fee(distance_km=distance_km, weight_kg=weight_kg, location=location)
