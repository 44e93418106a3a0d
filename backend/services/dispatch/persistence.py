"""
Row locking and optimistic writes for Booking dispatch state.

Every read-decide-write on a booking goes through lock_booking() inside
transaction.atomic() and ends with save_booking(), which only succeeds if the
version read is still current. Either guard alone serialises concurrent
accept/decline/expire calls on backends that support it; together they also
cover databases where SELECT ... FOR UPDATE is a no-op.
"""

import logging
from contextlib import contextmanager
from typing import Iterable

from django.db import DatabaseError, transaction
from django.db.models import F

from bookings.models import Booking
from .exceptions import NotFoundError, StaleBookingError

logger = logging.getLogger(__name__)


def lock_booking(booking_id) -> Booking:
    """Load a booking with a row lock. Must run inside transaction.atomic()."""
    try:
        return Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError("Booking not found")


def save_booking(booking: Booking, fields: Iterable[str] = ()) -> Booking:
    """
    Compare-and-swap write of the given fields plus a version bump.

    Raises:
        StaleBookingError: Another writer committed since this copy was read
    """
    values = {name: getattr(booking, name) for name in fields}
    updated = (
        Booking.objects
        .filter(pk=booking.pk, version=booking.version)
        .update(version=F("version") + 1, **values)
    )
    if updated != 1:
        logger.warning("Version conflict on booking %s (expected v%s)", booking.pk, booking.version)
        raise StaleBookingError()
    booking.version += 1
    return booking


def run_after_commit(func, *args, **kwargs):
    """
    Defer a side effect (websocket push, task scheduling) until the current
    transaction commits. Failures are logged and never reach the caller.
    """
    def _call():
        try:
            func(*args, **kwargs)
        except Exception:
            logger.exception("Post-commit hook %s failed", getattr(func, "__name__", func))

    transaction.on_commit(_call)


@contextmanager
def logged_database_errors(action: str, booking_id, actor_id):
    """
    Log an unexpected database failure with the booking and the acting user,
    then let it propagate as a server error.
    """
    try:
        yield
    except DatabaseError:
        logger.exception("Database error during %s on booking %s (actor %s)", action, booking_id, actor_id)
        raise
