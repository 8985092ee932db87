"""
Notifier package: delivery of rendered alert messages.
"""

from .base import NotificationResult, Notifier
from .email import EmailNotifier

__all__ = [
    "EmailNotifier",
    "NotificationResult",
    "Notifier",
]
