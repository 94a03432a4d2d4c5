"""
Service dependencies for FastAPI.

Builds request-scoped services on top of the request's database session.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.db.session import get_db
from backoffice.app.repositories.order_repository import OrderRepository, ClientRepository
from backoffice.app.services.delivery_notifications import DeliveryNotifier
from backoffice.app.services.delivery_service import DeliveryService
from backoffice.app.services.email_service import email_service


def get_email_sender():
    """Outgoing mail sender. Overridden in tests."""
    return email_service


async def get_delivery_service(
    db: AsyncSession = Depends(get_db),
    email_sender=Depends(get_email_sender)
) -> DeliveryService:
    """
    FastAPI dependency for the delivery workflow.

    Notifications look up orders and clients on the same session as the
    service itself.
    """
    notifier = DeliveryNotifier(
        orders=OrderRepository(db),
        clients=ClientRepository(db),
        email_sender=email_sender,
    )
    return DeliveryService(db, notifier=notifier)
