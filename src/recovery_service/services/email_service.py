"""Email service — sends recovery codes via async SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from recovery_service.config import settings
from recovery_service.recovery.errors import GatewayError, GatewayTimeout
from recovery_service.recovery.types import DeliveryOutcome, mask_email

logger = logging.getLogger(__name__)


class SmtpEmailGateway:
    """Sends the recovery e-mail using the configured SMTP server."""

    def build_message(self, to_email: str, code: str) -> EmailMessage:
        subject = f"Password recovery code — {settings.app_name}"
        body = (
            "Hello,\n\n"
            f"Your password recovery code is {code}.\n"
            "It is valid for 10 minutes.\n\n"
            "If you did not request a password recovery, please ignore this "
            "message and contact support.\n\n"
            "Best regards,\n"
            f"The {settings.app_name} Team"
        )

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.email_from
        msg["To"] = to_email
        msg.set_content(body)
        return msg

    async def send(self, destination: str, code: str, account_id: str) -> DeliveryOutcome:
        """Send the code e-mail to *destination*.

        Parameters
        ----------
        destination:
            Recipient email address.
        code:
            The recovery code (goes into the body only).
        account_id:
            Account the code belongs to (used for logging).
        """
        msg = self.build_message(destination, code)
        logger.info("Sending recovery email for %s to %s", account_id, mask_email(destination))

        try:
            errors, _response = await aiosmtplib.send(
                msg,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                start_tls=True,
                timeout=settings.delivery_timeout_seconds,
            )
        except aiosmtplib.SMTPTimeoutError as exc:
            raise GatewayTimeout("SMTP server timed out") from exc
        except aiosmtplib.SMTPException as exc:
            raise GatewayError(f"SMTP server rejected the message ({type(exc).__name__})") from exc

        if destination in errors:
            return DeliveryOutcome.failed("SMTP server refused the recipient")

        logger.info("Recovery email accepted for %s", account_id)
        return DeliveryOutcome.confirmed()
