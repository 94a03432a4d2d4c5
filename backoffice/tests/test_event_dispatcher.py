"""
Unit tests for the domain event dispatcher.
"""

import pytest

from backoffice.app.domain.events import EventDispatcher, EventType


@pytest.fixture
def dispatcher():
    return EventDispatcher()


def recorder(calls, label):
    async def handler(event):
        calls.append((label, event.type, event.payload))
    return handler


@pytest.mark.asyncio
async def test_on_receives_every_dispatch(dispatcher):
    calls = []
    dispatcher.on(EventType.DELIVERY_CREATED, recorder(calls, "a"))

    await dispatcher.dispatch(EventType.DELIVERY_CREATED, {"order_id": 1})
    await dispatcher.dispatch(EventType.DELIVERY_CREATED, {"order_id": 2})
    await dispatcher.dispatch(EventType.DELIVERY_UPDATED, {"order_id": 3})

    assert calls == [
        ("a", "delivery.created", {"order_id": 1}),
        ("a", "delivery.created", {"order_id": 2}),
    ]


@pytest.mark.asyncio
async def test_once_runs_a_single_time(dispatcher):
    calls = []
    dispatcher.once(EventType.DELIVERY_ASSIGNED, recorder(calls, "once"))

    await dispatcher.dispatch(EventType.DELIVERY_ASSIGNED)
    await dispatcher.dispatch(EventType.DELIVERY_ASSIGNED)

    assert len(calls) == 1
    assert not dispatcher.has_handlers(EventType.DELIVERY_ASSIGNED)


@pytest.mark.asyncio
async def test_off_removes_handler(dispatcher):
    calls = []
    handler = recorder(calls, "a")
    dispatcher.on(EventType.DELIVERY_CANCELLED, handler)
    dispatcher.off(EventType.DELIVERY_CANCELLED, handler)

    await dispatcher.dispatch(EventType.DELIVERY_CANCELLED)

    assert calls == []
    assert dispatcher.get_handlers(EventType.DELIVERY_CANCELLED) == []


@pytest.mark.asyncio
async def test_order_is_regular_then_once_then_wildcard(dispatcher):
    calls = []
    dispatcher.on("*", recorder(calls, "wildcard"))
    dispatcher.once(EventType.DELIVERY_STATUS_UPDATED, recorder(calls, "once"))
    dispatcher.on(EventType.DELIVERY_STATUS_UPDATED, recorder(calls, "regular"))

    event = await dispatcher.dispatch(EventType.DELIVERY_STATUS_UPDATED, {"delivery_id": 5})

    assert [label for label, _, _ in calls] == ["regular", "once", "wildcard"]
    assert event.type == EventType.DELIVERY_STATUS_UPDATED
    assert event.payload == {"delivery_id": 5}
    assert event.timestamp is not None


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others(dispatcher):
    calls = []

    async def broken(event):
        raise RuntimeError("handler bug")

    dispatcher.on(EventType.DELIVERY_UPDATED, broken)
    dispatcher.on(EventType.DELIVERY_UPDATED, recorder(calls, "after"))

    await dispatcher.dispatch(EventType.DELIVERY_UPDATED, {"delivery_id": 1})

    assert [label for label, _, _ in calls] == ["after"]


def test_clear_handlers(dispatcher):
    async def noop(event):
        pass

    dispatcher.on(EventType.DELIVERY_CREATED, noop)
    dispatcher.on(EventType.DELIVERY_UPDATED, noop)

    dispatcher.clear_handlers(EventType.DELIVERY_CREATED)
    assert not dispatcher.has_handlers(EventType.DELIVERY_CREATED)
    assert dispatcher.has_handlers(EventType.DELIVERY_UPDATED)

    dispatcher.clear_handlers()
    assert not dispatcher.has_handlers(EventType.DELIVERY_UPDATED)
