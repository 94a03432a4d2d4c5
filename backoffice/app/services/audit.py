"""
Audit logging service for tracking back-office actions.

Provides centralized logging for compliance and support investigations.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backoffice.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    DELIVERY_CREATED = "DELIVERY_CREATED"
    DELIVERY_UPDATED = "DELIVERY_UPDATED"
    DELIVERY_STATUS_CHANGED = "DELIVERY_STATUS_CHANGED"
    DELIVERY_SCHEDULED = "DELIVERY_SCHEDULED"
    DELIVERY_ASSIGNED = "DELIVERY_ASSIGNED"
    DELIVERY_CANCELLED = "DELIVERY_CANCELLED"


async def log_event(
    db: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    actor: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log a back-office event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        entity_type: Kind of entity acted upon (e.g. "delivery")
        entity_id: ID of the entity
        actor: Who performed the action, when known
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        entity_type: Filter by entity kind
        entity_id: Filter by entity ID
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
