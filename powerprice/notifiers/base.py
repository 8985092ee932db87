"""
Base notifier classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None


class Notifier(ABC):
    """Abstract base class for notifiers."""

    channel: str = "unknown"

    @abstractmethod
    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        """
        Deliver a rendered message to one recipient.

        Args:
            recipient: Contact address
            subject: Message subject
            body: Plain text body

        Returns:
            NotificationResult indicating success or failure
        """
        pass
