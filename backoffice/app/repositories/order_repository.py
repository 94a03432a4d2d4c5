"""
Order and client lookups used by the delivery workflow.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.models.client import Client
from backoffice.app.models.order import Order


class OrderRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, order_id: int) -> Optional[Order]:
        result = await self.db.execute(select(Order).where(Order.id == order_id))
        return result.scalar_one_or_none()


class ClientRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, client_id: int) -> Optional[Client]:
        result = await self.db.execute(select(Client).where(Client.id == client_id))
        return result.scalar_one_or_none()
