"""
Domain exceptions for the power price alert service.
Provides clear, typed exceptions for business logic errors.
"""


class PriceAlertException(Exception):
    """Base exception for all power price alert errors."""
    pass


class TransientFetchError(PriceAlertException):
    """Raised when the price source is unreachable, times out or answers non-2xx."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedDataError(PriceAlertException):
    """Raised when a price payload or a single price entry cannot be parsed."""
    pass


class ValidationError(PriceAlertException):
    """Raised when subscriber or query input is invalid."""
    pass


class SubscriberNotFoundError(PriceAlertException):
    """Raised when a mutation targets a subscriber that does not exist."""
    pass


class DeliveryError(PriceAlertException):
    """Raised when a notification could not be delivered."""
    pass


class DatabaseError(PriceAlertException):
    """Raised when database operations fail."""
    pass
