"""Exceptions raised by the booking dispatch engine."""

from rest_framework import status


class DispatchError(Exception):
    """Base class for recoverable dispatch failures (mapped to 4xx)."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "dispatch_error"
    default_message = "Dispatch operation failed"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(DispatchError):
    """Raised when a booking, template, catalog entry or provider does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    default_message = "Not found"


class ForbiddenError(DispatchError):
    """Raised when the caller is not the party allowed to perform the mutation."""
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"
    default_message = "Not authorized"


class ConflictError(DispatchError):
    """Raised when the booking or offer is not in a state that permits the transition."""
    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"
    default_message = "Booking is not in a state that allows this action"


class OfferExpiredError(ConflictError):
    """Raised when the acting provider's own offer timed out before they responded."""
    error_code = "offer_expired"
    default_message = "This offer has timed out"


class CorruptedOfferError(ConflictError):
    """Raised when the pending offer has lost its provider reference."""
    error_code = "offer_corrupted"
    default_message = "Offer corrupted (provider missing)"


class StaleBookingError(ConflictError):
    """Raised when a concurrent write bumped the booking version first."""
    error_code = "stale_booking"
    default_message = "Booking was modified concurrently, please retry"


class NoProvidersAvailableError(DispatchError):
    """Raised when discovery or ranking produced no usable provider."""
    error_code = "no_providers_available"
    default_message = "No providers currently available."


class InvalidRequestError(DispatchError):
    """Raised for malformed dispatch input (unknown sort preference, inactive template)."""
    error_code = "invalid_request"
    default_message = "Invalid request"
