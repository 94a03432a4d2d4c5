"""
Audit Log Database Model.

Tracks back-office actions on business entities for compliance and support.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backoffice.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking changes to business entities.

    Events logged:
    - DELIVERY_CREATED / DELIVERY_UPDATED
    - DELIVERY_STATUS_CHANGED / DELIVERY_CANCELLED
    - DELIVERY_ASSIGNED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which entity was acted upon
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, nullable=True, index=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
