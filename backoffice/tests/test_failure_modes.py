"""
Failure Injection Tests.

Validates resilience against an unreachable SMTP relay.
"""

import smtplib

import pytest

from backoffice.app.core.config import settings
from backoffice.app.core.reliability import CircuitBreaker, CircuitOpenError
from backoffice.app.models.delivery_enums import DeliveryStatus
from backoffice.app.repositories.order_repository import OrderRepository, ClientRepository
from backoffice.app.services.delivery_notifications import DeliveryNotifier
from backoffice.app.services.delivery_service import DeliveryService
from backoffice.app.services.email_service import EmailService


async def failing_func():
    raise ValueError("Boom")


async def working_func():
    return "ok"


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=1)

    # Fail 1
    with pytest.raises(ValueError):
        await cb.call(failing_func)

    # Fail 2 (Threshold reached)
    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Call 3 (Should be CircuitOpenError)
    with pytest.raises(CircuitOpenError):
        await cb.call(working_func)


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_recovery(mocker):
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=10)
    clock = mocker.patch("backoffice.app.core.reliability.time.time", return_value=1000.0)

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Trial call after the reset timeout fails: straight back to OPEN
    clock.return_value = 1011.0
    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Next trial succeeds and closes the circuit
    clock.return_value = 1022.0
    assert await cb.call(working_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_success_resets_failure_count():
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    await cb.call(working_func)
    with pytest.raises(ValueError):
        await cb.call(failing_func)

    assert cb.state == "CLOSED"


@pytest.mark.asyncio
async def test_email_disabled_does_not_touch_smtp(mocker, monkeypatch):
    monkeypatch.setattr(settings, "email_enabled", False)
    smtp = mocker.patch("backoffice.app.services.email_service.smtplib.SMTP")

    await EmailService(breaker=CircuitBreaker()).send_email(
        to="ada@example.com", subject="Hello", text="Body"
    )

    smtp.assert_not_called()


@pytest.mark.asyncio
async def test_email_enabled_sends_over_smtp(mocker, monkeypatch):
    monkeypatch.setattr(settings, "email_enabled", True)
    monkeypatch.setattr(settings, "smtp_username", "mailer")
    monkeypatch.setattr(settings, "smtp_password", "secret")
    smtp = mocker.patch("backoffice.app.services.email_service.smtplib.SMTP")
    server = smtp.return_value.__enter__.return_value

    await EmailService(breaker=CircuitBreaker()).send_email(
        to="ada@example.com", subject="Your delivery is on its way", text="Body"
    )

    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "secret")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "ada@example.com"
    assert message["Subject"] == "Your delivery is on its way"


@pytest.mark.asyncio
async def test_email_requires_fields():
    with pytest.raises(ValueError):
        await EmailService(breaker=CircuitBreaker()).send_email(to="", subject="Hi", text="Body")

    with pytest.raises(ValueError):
        await EmailService(breaker=CircuitBreaker()).send_email(to="ada@example.com", subject="Hi")


@pytest.mark.asyncio
async def test_smtp_outage_opens_circuit(mocker, monkeypatch):
    monkeypatch.setattr(settings, "email_enabled", True)
    smtp = mocker.patch(
        "backoffice.app.services.email_service.smtplib.SMTP",
        side_effect=smtplib.SMTPConnectError(421, "unavailable")
    )
    sender = EmailService(breaker=CircuitBreaker(failure_threshold=2, reset_timeout=60))

    for _ in range(2):
        with pytest.raises(smtplib.SMTPConnectError):
            await sender.send_email(to="ada@example.com", subject="Hi", text="Body")

    with pytest.raises(CircuitOpenError):
        await sender.send_email(to="ada@example.com", subject="Hi", text="Body")
    assert smtp.call_count == 2


@pytest.mark.asyncio
async def test_transitions_survive_smtp_outage(db_session, order, events, locks, mocker, monkeypatch):
    """Status updates commit even while the mail relay is down and the circuit is open."""
    monkeypatch.setattr(settings, "email_enabled", True)
    mocker.patch(
        "backoffice.app.services.email_service.smtplib.SMTP",
        side_effect=ConnectionRefusedError("relay down")
    )
    notifier = DeliveryNotifier(
        orders=OrderRepository(db_session),
        clients=ClientRepository(db_session),
        email_sender=EmailService(breaker=CircuitBreaker(failure_threshold=1, reset_timeout=60)),
    )
    service = DeliveryService(db_session, notifier=notifier, events=events, locks=locks)
    delivery = await service.create_delivery({"order_id": order.id})

    for status in (DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED):
        delivery = await service.update_delivery_status(delivery.id, status)

    assert delivery.status == DeliveryStatus.DELIVERED
    assert len(delivery.status_history) == 4
