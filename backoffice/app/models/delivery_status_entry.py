"""
Delivery status history entry.

One row per status a delivery has occupied, including the initial one.
Rows are only ever inserted.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from backoffice.app.db.session import Base
from backoffice.app.models.delivery_enums import DeliveryStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryStatusEntry(Base):
    __tablename__ = "delivery_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    delivery_id = Column(Integer, ForeignKey("deliveries.id"), nullable=False, index=True)

    status = Column(
        Enum(DeliveryStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    note = Column(String(500), nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    delivery = relationship("Delivery", back_populates="status_history")

    def __repr__(self):
        return f"<DeliveryStatusEntry(delivery_id={self.delivery_id}, status='{self.status.value}')>"
