"""
PhotoBazaar Backend: Email Delivery
====================================

What:  SMTP sender for verification codes, plus a logging fallback.
How:   smtplib is blocking, so each attempt runs in a worker thread via
       asyncio.to_thread. Tenacity retries transient SMTP and socket errors
       with exponential backoff and jitter; once attempts are exhausted the
       failure surfaces as EmailDeliveryError (503).

Retry Strategy:
    Attempt 1 → fail → wait ~min_wait s (+jitter)
    Attempt 2 → fail → wait ~2*min_wait s (+jitter)
    Attempt 3 → fail → EmailDeliveryError
    Authentication failures are not retried.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage as MIMEMessage
from typing import Optional

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from photobazaar.config import settings
from photobazaar.exceptions import EmailDeliveryError
from photobazaar.services.email_base import EmailMessage, EmailSender

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    smtplib.SMTPServerDisconnected,
    smtplib.SMTPConnectError,
    smtplib.SMTPDataError,
    smtplib.SMTPHeloError,
    ConnectionError,
    TimeoutError,
)


class SMTPEmailSender(EmailSender):
    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        sender: str = "",
        use_tls: bool = True,
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    async def send(self, message: EmailMessage) -> None:
        try:
            await self._send_with_retry(message)
        except smtplib.SMTPAuthenticationError as e:
            logger.error("SMTP authentication failed for %s: %s", self.username, e)
            raise EmailDeliveryError(context={"error_type": type(e).__name__})
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Email to %s failed after %d attempts: %s",
                message.to,
                settings.retry_max_attempts,
                str(e),
            )
            raise EmailDeliveryError(context={"error_type": type(e).__name__})
        logger.info("Email '%s' sent to %s", message.subject, message.to)

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _send_with_retry(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._deliver, self._build(message))

    def _build(self, message: EmailMessage) -> MIMEMessage:
        mime = MIMEMessage()
        mime["From"] = self.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.set_content(message.text)
        if message.html:
            mime.add_alternative(message.html, subtype="html")
        return mime

    def _deliver(self, mime: MIMEMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(mime)


class LoggingEmailSender(EmailSender):
    """Used when SMTP_HOST is empty. Verification codes appear in the log."""

    async def send(self, message: EmailMessage) -> None:
        logger.warning(
            "SMTP not configured; email to %s not sent. Subject: %s\n%s",
            message.to,
            message.subject,
            message.text,
        )


_sender: Optional[EmailSender] = None


def get_email_sender() -> EmailSender:
    """Process-wide sender chosen from settings on first use."""
    global _sender
    if _sender is None:
        if settings.smtp_host:
            _sender = SMTPEmailSender(
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user,
                password=settings.smtp_password,
                sender=settings.smtp_from,
                use_tls=settings.smtp_use_tls,
                timeout=settings.smtp_timeout,
            )
        else:
            _sender = LoggingEmailSender()
        logger.info("Email sender: %s", type(_sender).__name__)
    return _sender
