"""
Database seeding script for development data.

Creates a client with two confirmed orders so deliveries can be created
through the API. Orders and clients have no endpoints of their own here.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backoffice.app.db.session import AsyncSessionLocal, engine, Base
from backoffice.app.models.client import Client
from backoffice.app.models.order import Order
from backoffice.app.models.delivery import Delivery
from backoffice.app.models.audit_log import AuditLog
from sqlalchemy import select


async def seed_data():
    """
    Seed a client and orders.

    Creates:
    - 1 client (with email, so status notifications are sent)
    - 2 confirmed orders for that client
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting data seeding...")

        result = await db.execute(
            select(Order).where(Order.order_number == "ORD-0001")
        )
        if result.scalar_one_or_none():
            print("ℹ️  Seed orders already exist, skipping seeding")
            return

        client = Client(
            name="Ada Okafor",
            email="ada.okafor@example.com",
            phone="+2348012345678",
            is_active=True
        )
        db.add(client)
        await db.flush()
        print(f"✅ Created client {client.name} (id: {client.id})")

        for number, amount in (("ORD-0001", 25000.0), ("ORD-0002", 8400.0)):
            order = Order(
                order_number=number,
                client_id=client.id,
                status="confirmed",
                total_amount=amount
            )
            db.add(order)
            await db.flush()
            print(f"✅ Created order {number} (id: {order.id})")

        await db.commit()

        print("\n🎉 Seeding completed successfully!")
        print("\nNext: POST /v1/deliveries with {\"order_id\": <id>}")


if __name__ == "__main__":
    asyncio.run(seed_data())
