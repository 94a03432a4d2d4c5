"""
Delivery persistence.

Wraps the queries the delivery workflow needs. Absent rows come back as None;
the service decides whether that is an error.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backoffice.app.core.exceptions import ConflictError
from backoffice.app.models.delivery import Delivery
from backoffice.app.models.delivery_enums import DeliveryStatus


class DeliveryRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, delivery_id: int) -> Optional[Delivery]:
        # populate_existing: always reflect the committed row, not a cached copy
        result = await self.db.execute(
            select(Delivery)
            .where(Delivery.id == delivery_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_order_id(self, order_id: int) -> Optional[Delivery]:
        result = await self.db.execute(
            select(Delivery)
            .where(Delivery.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def tracking_number_exists(self, tracking_number: str) -> bool:
        result = await self.db.execute(
            select(func.count(Delivery.id)).where(Delivery.tracking_number == tracking_number)
        )
        return result.scalar() > 0

    async def find_all(
        self,
        status: Optional[DeliveryStatus] = None,
        client_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 20
    ) -> Tuple[List[Delivery], int]:
        """
        Filtered, newest-first page of deliveries plus the total match count.

        The date range applies to scheduled_date.
        """
        query = select(Delivery)

        if status:
            query = query.where(Delivery.status == status)
        if client_id is not None:
            query = query.where(Delivery.client_id == client_id)
        if start_date:
            query = query.where(Delivery.scheduled_date >= start_date)
        if end_date:
            query = query.where(Delivery.scheduled_date <= end_date)

        count_result = await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar()

        result = await self.db.execute(
            query.order_by(Delivery.created_at.desc(), Delivery.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def add(self, delivery: Delivery) -> Delivery:
        self.db.add(delivery)
        await self.db.flush()
        return delivery

    async def update(self, delivery: Delivery, patch: Dict[str, Any]) -> Delivery:
        """
        Apply ``patch`` to a loaded delivery and flush it.

        The UPDATE is guarded by the version read with the delivery, so a
        concurrent writer that got there first makes this raise ConflictError.
        """
        delivery_id = delivery.id
        for field, value in patch.items():
            setattr(delivery, field, value)
        if "updated_at" not in patch:
            delivery.updated_at = datetime.now(timezone.utc)

        try:
            await self.db.flush()
        except StaleDataError:
            raise ConflictError(
                f"Delivery {delivery_id} was modified concurrently",
                details={"delivery_id": delivery_id}
            )
        return delivery
