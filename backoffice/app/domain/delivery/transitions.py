"""
Delivery status transition rules.

The transition table is plain data: a mapping from each status to the set of
statuses it may move to next. A status missing from its own set cannot be
re-entered, so "no-op" self-transitions are rejected like any other.
"""

from typing import Any, Dict, FrozenSet, Optional

from backoffice.app.core.exceptions import ValidationError
from backoffice.app.models.delivery_enums import DeliveryStatus


VALID_TRANSITIONS: Dict[DeliveryStatus, FrozenSet[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({
        DeliveryStatus.SCHEDULED,
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.CANCELLED,
    }),
    DeliveryStatus.SCHEDULED: frozenset({
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.CANCELLED,
    }),
    DeliveryStatus.IN_TRANSIT: frozenset({
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
    }),
    DeliveryStatus.DELIVERED: frozenset(),
    # Retry after a failed attempt
    DeliveryStatus.FAILED: frozenset({
        DeliveryStatus.SCHEDULED,
        DeliveryStatus.IN_TRANSIT,
    }),
    # Reactivation
    DeliveryStatus.CANCELLED: frozenset({
        DeliveryStatus.PENDING,
    }),
}


def parse_status(value: Any) -> Optional[DeliveryStatus]:
    """Return the DeliveryStatus for ``value``, or None if it is not one."""
    try:
        return DeliveryStatus(value)
    except ValueError:
        return None


def _label(value: Any) -> str:
    return value.value if isinstance(value, DeliveryStatus) else str(value)


def allowed_next_statuses(current_status: Any) -> FrozenSet[DeliveryStatus]:
    """Statuses reachable in one step from ``current_status`` (empty if unknown)."""
    current = parse_status(current_status)
    if current is None:
        return frozenset()
    return VALID_TRANSITIONS[current]


def is_terminal(status: Any) -> bool:
    return parse_status(status) is not None and not allowed_next_statuses(status)


def validate_status_transition(current_status: Any, new_status: Any) -> None:
    """
    Check that a delivery may move from ``current_status`` to ``new_status``.

    Raises:
        ValidationError: if either status is unknown or the pair is not in
            the transition table. The message names both statuses.
    """
    current = parse_status(current_status)
    new = parse_status(new_status)

    if current is None or new is None or new not in VALID_TRANSITIONS[current]:
        raise ValidationError(
            f"Invalid status transition from '{_label(current_status)}' to '{_label(new_status)}'",
            details={
                "current_status": _label(current_status),
                "new_status": _label(new_status),
                "allowed": sorted(s.value for s in allowed_next_statuses(current_status)),
            }
        )
