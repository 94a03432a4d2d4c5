"""
Client notifications for delivery status changes.

Only four statuses produce an email; the rest are silent. A delivery whose
order, client or client email cannot be found is skipped without error.
"""

import logging
from typing import Dict, Optional, Protocol, Tuple

from backoffice.app.models.delivery import Delivery
from backoffice.app.models.delivery_enums import DeliveryStatus
from backoffice.app.repositories.order_repository import OrderRepository, ClientRepository

logger = logging.getLogger("backoffice.deliveries.notifications")


class EmailSender(Protocol):
    async def send_email(self, to: str, subject: str, text: Optional[str] = None) -> None:
        ...


# status -> (subject, body); body is formatted with order_number
STATUS_TEMPLATES: Dict[DeliveryStatus, Tuple[str, str]] = {
    DeliveryStatus.SCHEDULED: (
        "Your delivery is being processed",
        "Your order #{order_number} is now being processed for delivery.",
    ),
    DeliveryStatus.IN_TRANSIT: (
        "Your delivery is on its way",
        "Good news! Your order #{order_number} is now out for delivery.",
    ),
    DeliveryStatus.DELIVERED: (
        "Your order has been delivered",
        "Your order #{order_number} has been delivered. Thank you for your business!",
    ),
    DeliveryStatus.FAILED: (
        "Delivery attempt unsuccessful",
        "We were unable to deliver your order #{order_number}. Our team will contact you soon.",
    ),
}


class DeliveryNotifier:

    def __init__(
        self,
        orders: OrderRepository,
        clients: ClientRepository,
        email_sender: EmailSender
    ):
        self.orders = orders
        self.clients = clients
        self.email_sender = email_sender

    async def notify_status_change(self, delivery: Delivery, new_status: DeliveryStatus) -> bool:
        """
        Email the order's client about ``new_status``.

        Returns True if an email was sent. Send failures propagate; callers
        treat this as best-effort.
        """
        template = STATUS_TEMPLATES.get(DeliveryStatus(new_status))
        if template is None:
            return False

        order = await self.orders.find_by_id(delivery.order_id)
        if not order:
            return False

        client = await self.clients.find_by_id(order.client_id)
        if not client or not client.email:
            logger.debug("No contact email for delivery %s, skipping notification", delivery.id)
            return False

        subject, body = template
        await self.email_sender.send_email(
            to=client.email,
            subject=subject,
            text=body.format(order_number=order.order_number),
        )
        return True
