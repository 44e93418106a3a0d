"""Celery tasks for booking dispatch background processing."""

from celery import shared_task
from django.db import close_old_connections
import logging

logger = logging.getLogger(__name__)


@shared_task
def expire_offer_task(booking_id: int, offer_id: int):
    """
    Expire one booking offer once its response window has passed.

    Scheduled when the offer is sent. If the provider already answered, or a
    request/sweep already expired the offer, this is a no-op.
    """
    from django.db import transaction
    from bookings.models import BookingOffer
    from services.dispatch import expire_if_needed, DispatchError
    from services.dispatch.persistence import lock_booking

    try:
        with transaction.atomic():
            booking = lock_booking(booking_id)
            if not BookingOffer.objects.filter(id=offer_id, booking=booking, status='pending').exists():
                logger.info("Offer %s on booking %s no longer pending, nothing to expire", offer_id, booking_id)
                return False
            expired = expire_if_needed(booking)
            return expired is not None
    except DispatchError as e:
        logger.warning("Could not expire offer %s on booking %s: %s", offer_id, booking_id, e.message)
        return False
    finally:
        close_old_connections()


@shared_task
def process_offer_timeouts_task():
    """Beat task: expire every overdue offer nobody has touched."""
    from services.dispatch import process_offer_timeouts

    try:
        expired_count, advanced_count = process_offer_timeouts()
    finally:
        close_old_connections()
    return {"expired": expired_count, "advanced": advanced_count}


@shared_task
def expire_stale_bookings_task():
    """Beat task: abandon bookings past their pending window."""
    from services.dispatch import expire_stale_bookings

    try:
        expired = expire_stale_bookings()
    finally:
        close_old_connections()
    return {"expired": expired}
