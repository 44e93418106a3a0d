"""
Offer lifecycle for sequential (offers_queue) bookings.

Handles the daisy-chain pattern for booking offers:
1. Offer the booking to the head of the ranked queue
2. Wait for accept/decline, or for the offer's timeout to pass
3. On decline/expiry, pop the next still-available provider
4. Repeat until someone accepts or the queue runs dry

At most one BookingOffer per booking is ever pending. Expiry is lazy:
expire_if_needed() runs at the start of every mutating call, and the periodic
sweeps (see sweeps.py) cover bookings nobody touches.
"""

import logging
import math
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from django.conf import settings
from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from bookings.models import Booking, BookingOffer
from providers.models import ProviderProfile
from providers.services import is_provider_available, lock_provider_profile, pause_provider
from realtime.notifications import notify_customer_event, notify_provider_event
from .exceptions import (
    ConflictError,
    CorruptedOfferError,
    ForbiddenError,
    OfferExpiredError,
)
from .persistence import logged_database_errors, lock_booking, run_after_commit, save_booking

logger = logging.getLogger(__name__)

SEARCHING_MESSAGE = "Searching for the best available provider..."
NO_LIVE_PROVIDERS_MESSAGE = "No live providers currently available."
NO_ACTIVE_OFFER_MESSAGE = "No active offer for you"

OFFERS_QUEUE = "offers_queue"


def offer_timeout() -> timedelta:
    return timedelta(seconds=getattr(settings, "BOOKING_OFFER_TIMEOUT_SECONDS", 120))


def pending_window() -> timedelta:
    return timedelta(seconds=getattr(settings, "BOOKING_PENDING_WINDOW_SECONDS", 300))


# ===================== Internal helpers =====================

def _open_offer(booking: Booking, provider_id: int, now) -> BookingOffer:
    """Create the pending offer row and schedule its side effects."""
    next_sequence = booking.offers.aggregate(top=Max("sequence"))["top"]
    offer = BookingOffer.objects.create(
        booking=booking,
        provider_id=provider_id,
        sequence=0 if next_sequence is None else next_sequence + 1,
        status="pending",
        offered_at=now,
    )
    logger.info("Offered booking %s to provider %s (offer %s)", booking.id, provider_id, offer.id)

    run_after_commit(
        notify_provider_event,
        "booking_offer",
        booking,
        provider_id,
        "New booking request. Respond before the offer times out.",
        {"offer_id": offer.id},
    )
    if getattr(settings, "BOOKING_SCHEDULE_OFFER_EXPIRY", True):
        run_after_commit(_schedule_expiry, booking.id, offer.id)
    return offer


def _schedule_expiry(booking_id: int, offer_id: int):
    from bookings.tasks import expire_offer_task

    # One extra second so the task never lands just before the deadline
    countdown = int(offer_timeout().total_seconds()) + 1
    expire_offer_task.apply_async((booking_id, offer_id), countdown=countdown)


def _close_offer(offer: BookingOffer, status: str, now):
    offer.status = status
    offer.responded_at = now
    offer.save(update_fields=["status", "responded_at"])


def _withdraw_other_offers(provider_id, accepted_booking_id, now):
    """Expire the provider's pending offers on other bookings and move those bookings on."""
    other_ids = list(
        BookingOffer.objects
        .filter(provider_id=provider_id, status="pending")
        .exclude(booking_id=accepted_booking_id)
        .values_list("booking_id", flat=True)
    )
    for other_id in other_ids:
        other = lock_booking(other_id)
        current = other.current_offer()
        if current is None or current.provider_id != provider_id:
            continue
        _close_offer(current, "expired", now)
        logger.info("Withdrew offer %s on booking %s: provider %s took another job",
                    current.id, other.id, provider_id)
        run_after_commit(
            notify_provider_event, "offer_expired", other, provider_id,
            "This booking offer was withdrawn because you accepted another job.",
        )
        advance_offer(other, now=now)


def _require_offers_queue(booking: Booking, action: str, provider=None):
    if booking.status != "requested":
        # Outsiders learn nothing about a booking they were never offered
        if provider is not None and not booking.offers.filter(provider=provider).exists():
            raise ForbiddenError(NO_ACTIVE_OFFER_MESSAGE)
        raise ConflictError(f"Cannot {action} now: booking is {booking.status}")
    if booking.dispatch_mode != OFFERS_QUEUE:
        raise ConflictError(f"Cannot {action} an offer on an open-broadcast booking")


def _offer_holder_error(booking: Booking, pending: Optional[BookingOffer], provider,
                        expired: Optional[BookingOffer]):
    """Return the error to raise if `provider` may not act on the current offer."""
    if expired is not None and expired.provider_id == provider.id:
        return OfferExpiredError("Your offer for this booking has timed out")
    if pending is None:
        return ForbiddenError(NO_ACTIVE_OFFER_MESSAGE)
    if pending.provider_id is None:
        logger.error("Booking %s pending offer %s is missing its provider", booking.id, pending.id)
        return CorruptedOfferError()
    if pending.provider_id != provider.id:
        logger.warning(
            "Provider mismatch on booking %s: expected %s, got %s",
            booking.id, pending.provider_id, provider.id,
        )
        return ForbiddenError(NO_ACTIVE_OFFER_MESSAGE)
    return None


# ===================== State transitions =====================

def create_offer_chain(booking: Booking, ranked_provider_ids: Sequence[int], now=None) -> Optional[BookingOffer]:
    """
    Load the ranked queue onto a freshly created booking and offer it to the head.

    Args:
        booking: Saved Booking (locked or just created in this transaction)
        ranked_provider_ids: Provider user ids, best first
        now: Override for the current time

    Returns:
        The first pending offer, or None if the queue was empty (the booking
        is then left exhausted with the no-live-providers message)
    """
    now = now or timezone.now()
    booking.pending_expires_at = now + pending_window()

    if not ranked_provider_ids:
        booking.pending_providers = []
        booking.provider_response_timeout = None
        booking.auto_assign_message = NO_LIVE_PROVIDERS_MESSAGE
        save_booking(booking, ["pending_providers", "provider_response_timeout",
                               "auto_assign_message", "pending_expires_at"])
        run_after_commit(notify_customer_event, "no_providers_available", booking, NO_LIVE_PROVIDERS_MESSAGE)
        logger.info("Booking %s created with an empty queue", booking.id)
        return None

    head, *tail = ranked_provider_ids
    offer = _open_offer(booking, head, now)
    booking.pending_providers = list(tail)
    booking.provider_response_timeout = now + offer_timeout()
    if not booking.auto_assign_message:
        booking.auto_assign_message = SEARCHING_MESSAGE
    save_booking(booking, ["pending_providers", "provider_response_timeout",
                           "auto_assign_message", "pending_expires_at"])
    return offer


def advance_offer(booking: Booking, now=None) -> Optional[BookingOffer]:
    """
    Offer the booking to the next queued provider who is still available.

    Unavailable providers are dropped from the queue without error and are
    never re-queued. Safe to call with an empty queue. Does nothing while an
    offer is still pending.

    Returns:
        The new pending offer, or None when the queue is exhausted
    """
    now = now or timezone.now()

    if booking.status != "requested":
        return None

    current = booking.current_offer()
    if current is not None:
        logger.debug("Booking %s still has pending offer %s, not advancing", booking.id, current.id)
        return current

    queue: List[int] = list(booking.pending_providers or [])
    new_offer = None
    while queue:
        provider_id = queue.pop(0)
        if not provider_id:
            continue
        if is_provider_available(provider_id):
            new_offer = _open_offer(booking, provider_id, now)
            break
        logger.info("Skipping unavailable provider %s for booking %s", provider_id, booking.id)

    booking.pending_providers = queue
    fields = ["pending_providers", "provider_response_timeout"]
    if new_offer is not None:
        booking.provider_response_timeout = now + offer_timeout()
    else:
        booking.provider_response_timeout = None
        booking.auto_assign_message = NO_LIVE_PROVIDERS_MESSAGE
        fields.append("auto_assign_message")
        run_after_commit(notify_customer_event, "no_providers_available", booking, NO_LIVE_PROVIDERS_MESSAGE)
        logger.info("Booking %s exhausted its provider queue", booking.id)

    save_booking(booking, fields)
    return new_offer


def expire_if_needed(booking: Booking, now=None) -> Optional[BookingOffer]:
    """
    Expire the pending offer if its response window has passed, then advance.

    Idempotent; call it on a locked booking before any accept/decline check.

    Returns:
        The offer that was expired by this call, or None
    """
    now = now or timezone.now()
    timeout = booking.provider_response_timeout
    if timeout is None or timeout >= now:
        return None

    current = booking.current_offer()
    if current is None:
        return None

    _close_offer(current, "expired", now)
    logger.info("Offer %s on booking %s expired for provider %s", current.id, booking.id, current.provider_id)
    run_after_commit(
        notify_provider_event, "offer_expired", booking, current.provider_id,
        "Your booking offer has timed out.",
    )
    advance_offer(booking, now=now)
    return current


def accept_offer(booking_id, provider) -> Booking:
    """
    Accept the pending offer held by `provider`.

    Raises:
        NotFoundError: Unknown booking
        ConflictError: Booking not awaiting acceptance, or the provider's own
            offer just timed out (OfferExpiredError)
        ForbiddenError: Provider does not hold the pending offer

    On success the provider is paused and any offers they still hold on other
    bookings are withdrawn, so one provider never holds two jobs at once.
    """
    with logged_database_errors("accept", booking_id, provider.id), transaction.atomic():
        lock_provider_profile(provider.id)
        booking = lock_booking(booking_id)
        _require_offers_queue(booking, "accept", provider)

        now = timezone.now()
        expired = expire_if_needed(booking, now=now)
        pending = booking.current_offer()
        error = _offer_holder_error(booking, pending, provider, expired)

        if error is None:
            _close_offer(pending, "accepted", now)
            booking.status = "in_progress"
            booking.overall_status = "in-progress"
            booking.provider_id = pending.provider_id
            booking.service = _service_for(booking, pending.provider_id)
            booking.accepted_at = now
            booking.pending_providers = []
            booking.provider_response_timeout = None
            booking.auto_assign_message = ""
            save_booking(booking, ["status", "overall_status", "provider", "service", "accepted_at",
                                   "pending_providers", "provider_response_timeout",
                                   "auto_assign_message"])
            pause_provider(provider.id)
            _withdraw_other_offers(provider.id, booking.id, now)
            run_after_commit(
                notify_customer_event, "booking_accepted", booking,
                "Your booking has been accepted! The provider is on the way.",
                {"provider_id": provider.id},
            )
            logger.info("Provider %s accepted booking %s", provider.id, booking.id)

    # Raised outside the atomic block so a lazy expiry above still commits
    if error is not None:
        raise error
    return booking


def decline_offer(booking_id, provider) -> Booking:
    """
    Decline the pending offer held by `provider` and cascade to the next one.

    Raises the same errors as accept_offer. A provider who already declined
    gets ForbiddenError ("No active offer for you").
    """
    with logged_database_errors("decline", booking_id, provider.id), transaction.atomic():
        booking = lock_booking(booking_id)
        _require_offers_queue(booking, "decline", provider)

        now = timezone.now()
        expired = expire_if_needed(booking, now=now)
        pending = booking.current_offer()
        error = _offer_holder_error(booking, pending, provider, expired)

        if error is None:
            _close_offer(pending, "declined", now)
            logger.info("Provider %s declined booking %s", provider.id, booking.id)
            advance_offer(booking, now=now)

    if error is not None:
        raise error
    return booking


def force_advance_offer(booking_id, admin) -> Booking:
    """
    Admin escape hatch: expire the current offer immediately and advance.

    Raises:
        ForbiddenError: Caller is not an admin
        ConflictError: Booking is not in the requested state
    """
    if not getattr(admin, "is_marketplace_admin", False):
        raise ForbiddenError("Admin only")

    with logged_database_errors("force-advance", booking_id, admin.id), transaction.atomic():
        booking = lock_booking(booking_id)
        _require_offers_queue(booking, "advance")

        now = timezone.now()
        current = booking.current_offer()
        if current is not None:
            _close_offer(current, "expired", now)
            run_after_commit(
                notify_provider_event, "offer_expired", booking, current.provider_id,
                "This booking offer was withdrawn.",
            )
        logger.info("Admin %s force-advanced booking %s", admin.id, booking.id)
        advance_offer(booking, now=now)

    return booking


# ===================== Queries =====================

def _service_for(booking: Booking, provider_id):
    """The accepting provider's listing for this booking, if we can find it."""
    listings = None
    if booking.service_template_id:
        listings = booking.service_template.services.filter(provider_id=provider_id)
    elif booking.service_catalog_id:
        from .discovery import find_matching_services
        listings = find_matching_services(booking.service_catalog).filter(provider_id=provider_id)
    if listings is not None:
        listing = listings.order_by("price", "id").first()
        if listing is not None:
            return listing
    return booking.service


def _seconds_left(timeout, now) -> Optional[int]:
    if timeout is None:
        return None
    return max(0, math.ceil((timeout - now).total_seconds()))


def _provider_summaries(provider_ids) -> Dict[int, dict]:
    profiles = ProviderProfile.objects.select_related("user").filter(user_id__in=list(provider_ids))
    return {
        p.user_id: {
            "id": p.user_id,
            "name": p.user.get_full_name() or p.user.username,
            "rating": p.rating,
            "is_available": p.is_available,
        }
        for p in profiles
    }


def get_offers_debug(booking_id, requester) -> dict:
    """
    Diagnostic view of a booking's offer history and queue.

    Only the booking's customer or an admin may read it. Applies any overdue
    expiry first, so the snapshot never shows a stale pending offer.
    """
    with transaction.atomic():
        booking = lock_booking(booking_id)
        if booking.customer_id != requester.id and not getattr(requester, "is_marketplace_admin", False):
            raise ForbiddenError("Not authorized")

        now = timezone.now()
        if booking.status == "requested" and booking.dispatch_mode == OFFERS_QUEUE:
            expire_if_needed(booking, now=now)

        offers = list(booking.offers.all())
        queue = list(booking.pending_providers or [])
        summaries = _provider_summaries({o.provider_id for o in offers if o.provider_id} | set(queue))
        current = next((o for o in offers if o.status == "pending"), None)

        return {
            "booking": {
                "id": booking.id,
                "status": booking.status,
                "overall_status": booking.overall_status,
                "dispatch_mode": booking.dispatch_mode,
                "sort_preference": booking.sort_preference,
                "service_template": booking.service_template_id,
                "service_catalog": booking.service_catalog_id,
                "version": booking.version,
            },
            "offers": [
                {
                    "id": o.id,
                    "sequence": o.sequence,
                    "provider": summaries.get(o.provider_id, {"id": o.provider_id}),
                    "status": o.status,
                    "offered_at": o.offered_at,
                    "responded_at": o.responded_at,
                }
                for o in offers
            ],
            "pending_providers": [summaries.get(pid, {"id": pid}) for pid in queue],
            "auto_assign_message": booking.auto_assign_message or None,
            "provider_response_timeout": booking.provider_response_timeout,
            "pending_expires_at": booking.pending_expires_at,
            "seconds_left": _seconds_left(booking.provider_response_timeout, now),
            "current_pending_provider": current.provider_id if current else None,
        }


def list_my_pending_offers(provider, now=None) -> List[dict]:
    """Provider inbox: bookings where `provider` holds the live pending offer."""
    now = now or timezone.now()
    offers = (
        BookingOffer.objects
        .filter(
            provider=provider,
            status="pending",
            booking__status="requested",
            booking__dispatch_mode=OFFERS_QUEUE,
            booking__provider_response_timeout__gte=now,
        )
        .select_related("booking__service_template", "booking__service_catalog", "booking__service")
        .order_by("booking__provider_response_timeout")
    )

    inbox = []
    for offer in offers:
        booking = offer.booking
        inbox.append({
            "booking_id": booking.id,
            "offer_id": offer.id,
            "service_template": getattr(booking.service_template, "name", None),
            "service_catalog": getattr(booking.service_catalog, "name", None),
            "service": getattr(booking.service, "name", None),
            "latitude": float(booking.latitude),
            "longitude": float(booking.longitude),
            "offered_at": offer.offered_at,
            "timeout_at": booking.provider_response_timeout,
            "seconds_left": _seconds_left(booking.provider_response_timeout, now),
        })
    return inbox
