"""
Periodic sweeps for bookings nobody is touching.

process_offer_timeouts() applies the per-offer timer, expire_stale_bookings()
the booking-wide pending window. Both are safe to run concurrently with
request handlers: each booking is re-locked and re-checked before writing, and
a version conflict just skips that booking until the next run.
"""

import logging
from typing import Optional, Tuple

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from bookings.models import Booking
from realtime.notifications import notify_customer_event, notify_provider_event
from .exceptions import NotFoundError, StaleBookingError
from .offer_engine import OFFERS_QUEUE, expire_if_needed
from .persistence import lock_booking, run_after_commit, save_booking

logger = logging.getLogger(__name__)

BOOKING_EXPIRED_MESSAGE = "Request expired (no provider accepted in time)."


def _batch_size(batch_size: Optional[int]) -> int:
    return batch_size or getattr(settings, "BOOKING_SWEEP_BATCH_SIZE", 50)


def process_offer_timeouts(now=None, batch_size: Optional[int] = None) -> Tuple[int, int]:
    """
    Expire overdue pending offers and advance their bookings.

    Returns a tuple of (expired_count, advanced_count), where advanced_count
    counts bookings that ended up with a fresh pending offer.
    """
    now = now or timezone.now()
    due_ids = list(
        Booking.objects
        .filter(
            status="requested",
            dispatch_mode=OFFERS_QUEUE,
            provider_response_timeout__lt=now,
        )
        .order_by("provider_response_timeout")
        .values_list("id", flat=True)[:_batch_size(batch_size)]
    )

    expired_count = 0
    advanced_count = 0
    for booking_id in due_ids:
        try:
            with transaction.atomic():
                booking = lock_booking(booking_id)
                if booking.status != "requested":
                    continue
                if expire_if_needed(booking, now=now) is None:
                    continue
                expired_count += 1
                if booking.current_offer() is not None:
                    advanced_count += 1
        except (StaleBookingError, NotFoundError) as exc:
            logger.info("Skipping booking %s in offer sweep: %s", booking_id, exc.message)
        except DatabaseError:
            logger.exception("Database error in offer sweep on booking %s (actor sweep)", booking_id)

    if due_ids:
        logger.info("Offer sweep: expired %d offer(s), advanced %d booking(s)", expired_count, advanced_count)

    return expired_count, advanced_count


def _expire_booking(booking: Booking, now):
    current = booking.current_offer()
    if current is not None:
        current.status = "expired"
        current.responded_at = now
        current.save(update_fields=["status", "responded_at"])
        run_after_commit(
            notify_provider_event, "offer_expired", booking, current.provider_id,
            "This booking request has expired.",
        )

    booking.status = "expired"
    booking.overall_status = "expired"
    booking.pending_providers = []
    booking.provider_response_timeout = None
    booking.auto_assign_message = BOOKING_EXPIRED_MESSAGE
    save_booking(booking, ["status", "overall_status", "pending_providers",
                           "provider_response_timeout", "auto_assign_message"])
    run_after_commit(notify_customer_event, "booking_expired", booking, BOOKING_EXPIRED_MESSAGE)


def expire_stale_bookings(now=None, batch_size: Optional[int] = None) -> int:
    """
    Abandon bookings still pending past their pending_expires_at deadline.

    Bookings with an accepted offer or accepted broadcast response are left
    alone. Returns the number of bookings expired.
    """
    now = now or timezone.now()
    due_ids = list(
        Booking.objects
        .filter(overall_status="pending", pending_expires_at__lt=now)
        .order_by("pending_expires_at")
        .values_list("id", flat=True)[:_batch_size(batch_size)]
    )

    expired = 0
    for booking_id in due_ids:
        try:
            with transaction.atomic():
                booking = lock_booking(booking_id)
                if booking.overall_status != "pending" or booking.status != "requested":
                    continue
                if booking.has_accepted_offer() or booking.provider_responses.filter(status="accepted").exists():
                    continue
                _expire_booking(booking, now)
                expired += 1
                logger.info("Booking %s expired after its pending window", booking.id)
        except (StaleBookingError, NotFoundError) as exc:
            logger.info("Skipping booking %s in expiry sweep: %s", booking_id, exc.message)
        except DatabaseError:
            logger.exception("Database error in expiry sweep on booking %s (actor sweep)", booking_id)

    return expired
