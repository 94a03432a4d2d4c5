"""
Domain event dispatching.

Services emit events after their writes commit; handlers react (audit,
integrations, cache busting). Handlers are async callables receiving a
DomainEvent. A failing handler is logged and skipped: events are emitted
after the fact and must not turn a committed operation into an error.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger("backoffice.events")

WILDCARD = "*"


class EventType:
    """Event type constants."""
    DELIVERY_CREATED = "delivery.created"
    DELIVERY_UPDATED = "delivery.updated"
    DELIVERY_STATUS_UPDATED = "delivery.status.updated"
    DELIVERY_ASSIGNED = "delivery.assigned"
    DELIVERY_CANCELLED = "delivery.cancelled"


@dataclass(frozen=True)
class DomainEvent:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventDispatcher:

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._once_handlers: Dict[str, List[EventHandler]] = {}

    def on(self, event_type: str, handler: EventHandler) -> "EventDispatcher":
        self._handlers.setdefault(event_type, []).append(handler)
        return self

    def once(self, event_type: str, handler: EventHandler) -> "EventDispatcher":
        self._once_handlers.setdefault(event_type, []).append(handler)
        return self

    def off(self, event_type: str, handler: EventHandler) -> "EventDispatcher":
        for registry in (self._handlers, self._once_handlers):
            handlers = [h for h in registry.get(event_type, []) if h is not handler]
            if handlers:
                registry[event_type] = handlers
            else:
                registry.pop(event_type, None)
        return self

    def get_handlers(self, event_type: str) -> List[EventHandler]:
        return [*self._handlers.get(event_type, []), *self._once_handlers.get(event_type, [])]

    def has_handlers(self, event_type: str) -> bool:
        return bool(self.get_handlers(event_type))

    def clear_handlers(self, event_type: str = None) -> "EventDispatcher":
        if event_type:
            self._handlers.pop(event_type, None)
            self._once_handlers.pop(event_type, None)
        else:
            self._handlers = {}
            self._once_handlers = {}
        return self

    async def dispatch(self, event_type: str, payload: Dict[str, Any] = None) -> DomainEvent:
        """
        Run every handler registered for ``event_type``, then the one-time
        handlers (which are removed), then the wildcard handlers.
        """
        event = DomainEvent(type=event_type, payload=payload or {})

        handlers = list(self._handlers.get(event_type, []))
        handlers.extend(self._once_handlers.pop(event_type, []))
        if event_type != WILDCARD:
            handlers.extend(self._handlers.get(WILDCARD, []))

        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Handler %r failed for event %s", handler, event_type)

        return event


# Process-wide dispatcher
event_dispatcher = EventDispatcher()
