"""
Delivery-related enumerations.
"""

import enum


class DeliveryStatus(str, enum.Enum):
    """
    Delivery status enumeration.

    Status flow (see backoffice.app.domain.delivery.transitions):
        PENDING → SCHEDULED | IN_TRANSIT | CANCELLED
        SCHEDULED → IN_TRANSIT | CANCELLED
        IN_TRANSIT → DELIVERED | FAILED
        FAILED → SCHEDULED | IN_TRANSIT  (retry)
        CANCELLED → PENDING  (reactivation)
        DELIVERED is terminal
    """
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryMethod(str, enum.Enum):
    """How the goods reach the client."""
    PICKUP = "pickup"
    DELIVERY = "delivery"


class DeliveryPriority(str, enum.Enum):
    """Delivery priority enumeration."""
    STANDARD = "standard"
    EXPRESS = "express"
    PRIORITY = "priority"
