"""Exceptions raised by the boarding domain layer."""


class BoardingError(RuntimeError):
    """Base class for every error the booking backend raises on purpose."""


class ValidationError(BoardingError):
    """Raised when incoming data fails validation."""


class NotFoundError(BoardingError):
    """Raised when a booking (or a search for bookings) matches nothing."""


class CapacityExceededError(BoardingError):
    """Raised when no slot remains for a requested night."""

    def __init__(self, message: str, *, date: str | None = None) -> None:
        super().__init__(message)
        self.date = date


class StoreError(BoardingError):
    """Raised when the database cannot complete an operation."""
