"""
Email SMTP notifier.
"""

import asyncio
import smtplib
from email.mime.text import MIMEText
from typing import Optional

from powerprice.config import settings
from powerprice.logging_config import get_logger
from .base import Notifier, NotificationResult

logger = get_logger(__name__)


class EmailNotifier(Notifier):
    """Sends notifications via email SMTP."""

    channel = "email"

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_address: str,
        enabled: bool = True,
        timeout: float = 10.0,
    ):
        """
        Initialize email notifier.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            smtp_user: SMTP username (login is skipped when empty)
            smtp_password: SMTP password
            from_address: Sender email address
            enabled: When False, messages are logged instead of sent
            timeout: Socket timeout for the SMTP connection
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address
        self.enabled = enabled
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config=None) -> "EmailNotifier":
        config = config or settings
        return cls(
            smtp_host=config.smtp_host,
            smtp_port=config.smtp_port,
            smtp_user=config.smtp_user,
            smtp_password=config.smtp_password,
            from_address=config.email_from,
            enabled=config.email_enabled,
            timeout=config.notify_timeout_seconds,
        )

    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        """Send a message via email."""
        if not self.enabled:
            logger.info("Email disabled, not sending", recipient=recipient, subject=subject)
            return NotificationResult(success=True, channel=self.channel)

        try:
            message = self._create_message(recipient, subject, body)
            await asyncio.to_thread(self._deliver, message)
            logger.info("Email sent", recipient=recipient, subject=subject)
            return NotificationResult(success=True, channel=self.channel)

        except smtplib.SMTPAuthenticationError as e:
            logger.error("SMTP authentication failed", recipient=recipient, error=str(e))
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"Authentication failed: {str(e)}",
            )
        except Exception as e:
            logger.error("Could not send email", recipient=recipient, error=str(e))
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"SMTP error: {str(e)}",
            )

    def _deliver(self, message: MIMEText) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            server.starttls()
            if self.smtp_user:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(message)

    def _create_message(self, recipient: str, subject: str, body: str) -> MIMEText:
        """Create a plain text email message."""
        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = self.from_address
        message["To"] = recipient
        return message
