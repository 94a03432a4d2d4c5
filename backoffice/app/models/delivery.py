"""
Delivery database model.

A delivery carries one order to its client. Its status only changes through
DeliveryService.update_delivery_status, which also appends to status_history.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, Boolean, JSON
from sqlalchemy.orm import relationship
from backoffice.app.db.session import Base
from backoffice.app.models.delivery_enums import DeliveryStatus, DeliveryMethod, DeliveryPriority
from backoffice.app.models.delivery_status_entry import DeliveryStatusEntry


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls):
    # Store the lowercase values rather than the member names
    return Enum(enum_cls, values_callable=lambda e: [m.value for m in e])


class Delivery(Base):
    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Immutable references
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    tracking_number = Column(String(32), unique=True, nullable=False, index=True)

    # Workflow state
    status = Column(_enum(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False, index=True)
    version = Column(Integer, nullable=False)

    # Descriptive attributes
    delivery_method = Column(_enum(DeliveryMethod), default=DeliveryMethod.DELIVERY, nullable=False)
    priority = Column(_enum(DeliveryPriority), default=DeliveryPriority.STANDARD, nullable=False)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    time_slot = Column(String(50), nullable=True)
    estimated_delivery_time = Column(String(100), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    delivery_location = Column(JSON, nullable=True)
    delivery_fee = Column(Float, nullable=False, default=0.0)
    is_free_delivery = Column(Boolean, nullable=False, default=False)
    delivery_notes = Column(String(1000), nullable=True)
    recipient_name = Column(String(200), nullable=True)
    recipient_phone = Column(String(50), nullable=True)
    signature_required = Column(Boolean, nullable=False, default=False)
    proof_of_delivery = Column(String(500), nullable=True)

    # Delivery personnel
    assignee_id = Column(Integer, nullable=True, index=True)
    personnel_name = Column(String(200), nullable=True)
    personnel_phone = Column(String(50), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    status_history = relationship(
        DeliveryStatusEntry,
        back_populates="delivery",
        order_by=DeliveryStatusEntry.id,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Optimistic concurrency: UPDATE ... WHERE version = <read version>
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Delivery(id={self.id}, tracking='{self.tracking_number}', status='{self.status.value}')>"
