"""
PhotoBazaar Backend: Abstract Email Sender
===========================================

What:  Contract for delivering transactional email (verification codes).
How:   Concrete senders implement `send()`. The account service only talks to
       this interface, so tests swap in a mock and deployments without SMTP
       fall back to a sender that writes the message to the log.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class EmailMessage:
    to: str
    subject: str
    text: str
    html: str = ""


class EmailSender(ABC):
    """
    Implementations:
        - SMTPEmailSender: smtplib with tenacity retries
        - LoggingEmailSender: development fallback, logs instead of sending
    """

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        """
        Deliver one message.

        Raises:
            EmailDeliveryError: delivery failed after all retries
        """
        ...

    async def send_verification_code(self, to: str, first_name: str, code: str, ttl_minutes: int) -> None:
        subject = "Your PhotoBazaar verification code"
        text = (
            f"Hi {first_name},\n\n"
            f"Your PhotoBazaar verification code is {code}.\n"
            f"It expires in {ttl_minutes} minutes.\n\n"
            "If you did not try to create an account, you can ignore this email.\n"
        )
        html = (
            f"<p>Hi {first_name},</p>"
            f"<p>Your PhotoBazaar verification code is "
            f"<strong style=\"font-size:24px;letter-spacing:4px\">{code}</strong>.</p>"
            f"<p>It expires in {ttl_minutes} minutes.</p>"
            "<p>If you did not try to create an account, you can ignore this email.</p>"
        )
        await self.send(EmailMessage(to=to, subject=subject, text=text, html=html))
