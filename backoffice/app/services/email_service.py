"""
Outgoing email over SMTP.

smtplib is blocking, so each send runs in a worker thread. Sends go through
the email circuit breaker: after repeated failures further sends fail fast
with CircuitOpenError until the reset timeout passes.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from backoffice.app.core.config import settings
from backoffice.app.core.reliability import CircuitBreaker, email_circuit_breaker

logger = logging.getLogger("backoffice.email")


class EmailService:

    def __init__(self, breaker: CircuitBreaker = email_circuit_breaker):
        self.breaker = breaker

    async def send_email(
        self,
        to: str,
        subject: str,
        text: Optional[str] = None,
        html: Optional[str] = None,
        sender: Optional[str] = None
    ) -> None:
        """
        Send one email.

        Raises:
            ValueError: recipient, subject or body missing
            CircuitOpenError: recent sends kept failing
            smtplib.SMTPException / OSError: the SMTP exchange failed
        """
        if not to or not subject or not (text or html):
            raise ValueError("Missing required email fields")

        message = EmailMessage()
        message["From"] = sender or settings.email_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or "")
        if html:
            message.add_alternative(html, subtype="html")

        if not settings.email_enabled:
            logger.info("Email disabled, not sending '%s' to %s", subject, to)
            return

        await self.breaker.call(asyncio.to_thread, self._deliver, message)
        logger.info("Email sent: '%s' to %s", subject, to)

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password or "")
            server.send_message(message)


email_service = EmailService()
