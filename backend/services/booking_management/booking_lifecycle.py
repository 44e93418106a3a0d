"""
Core booking lifecycle operations.

Creation runs discovery and ranking, then hands the ranked providers to the
booking's dispatch mode: a sequential offer queue, or an open broadcast where
the first provider to accept wins. The mode is chosen once at creation and
every later call routes on it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking, ProviderResponse
from catalog.models import ServiceCatalog, ServiceTemplate
from providers.services import pause_provider, release_provider
from realtime.notifications import notify_customer_event, notify_provider_event
from services.dispatch.discovery import discover_candidates
from services.dispatch.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NoProvidersAvailableError,
    NotFoundError,
)
from services.dispatch.offer_engine import (
    NO_LIVE_PROVIDERS_MESSAGE,
    OFFERS_QUEUE,
    SEARCHING_MESSAGE,
    accept_offer,
    create_offer_chain,
    decline_offer,
    pending_window,
)
from services.dispatch.persistence import logged_database_errors, lock_booking, run_after_commit, save_booking
from services.dispatch.ranking import SORT_PREFERENCES, SORT_RATING, rank_candidates

logger = logging.getLogger(__name__)

RESPONSE_SET = "response_set"
DISPATCH_MODES = (OFFERS_QUEUE, RESPONSE_SET)

ALREADY_REJECTED = "already-rejected"


@dataclass
class BookingResult:
    """Result object for booking operations."""
    success: bool
    booking: Optional[Booking] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def _is_admin(user) -> bool:
    return getattr(user, "is_marketplace_admin", False)


def _dispatch_mode(booking_id) -> str:
    # Fixed at creation, so reading it before taking the lock is safe
    mode = Booking.objects.filter(pk=booking_id).values_list("dispatch_mode", flat=True).first()
    if mode is None:
        raise NotFoundError("Booking not found")
    return mode


# ===================== Customer Operations =====================

def create_dispatch(
    customer,
    source,
    latitude,
    longitude,
    sort_preference: str = SORT_RATING,
    *,
    strict: bool = False,
    dispatch_mode: str = OFFERS_QUEUE,
    scheduled_at=None,
    preferred_datetime=None,
    service_details: Optional[Dict[str, Any]] = None,
) -> BookingResult:
    """
    Create a booking for `source` and start dispatching it.

    Args:
        customer: User model instance (customer)
        source: ServiceTemplate or ServiceCatalog being booked
        latitude: Job location latitude
        longitude: Job location longitude
        sort_preference: nearby | rating | cheapest | mix
        strict: Refuse to create the booking when nobody is available
        dispatch_mode: offers_queue | response_set
        scheduled_at: Optional scheduled start
        preferred_datetime: Optional customer-preferred time
        service_details: Free-form job details (questionnaire answers)

    Returns:
        BookingResult with the created booking

    Raises:
        InvalidRequestError: Unknown sort preference or dispatch mode
        NoProvidersAvailableError: strict and no live candidates
    """
    if sort_preference not in SORT_PREFERENCES:
        raise InvalidRequestError(f"Unknown sort preference: {sort_preference}")
    if dispatch_mode not in DISPATCH_MODES:
        raise InvalidRequestError(f"Unknown dispatch mode: {dispatch_mode}")

    candidates = discover_candidates(source, latitude, longitude)
    ranking = None
    if candidates:
        ranking = rank_candidates(candidates, sort_preference)
    elif strict:
        raise NoProvidersAvailableError()

    ranked_ids = ranking.provider_ids if ranking else []
    fallback_note = ranking.fallback_note if ranking else None

    with transaction.atomic():
        booking = Booking.objects.create(
            customer=customer,
            service_template=source if isinstance(source, ServiceTemplate) else None,
            service_catalog=source if isinstance(source, ServiceCatalog) else None,
            service_details=service_details or {},
            latitude=latitude,
            longitude=longitude,
            scheduled_at=scheduled_at,
            preferred_datetime=preferred_datetime,
            dispatch_mode=dispatch_mode,
            sort_preference=sort_preference,
            auto_assign_message=fallback_note or "",
        )

        if dispatch_mode == OFFERS_QUEUE:
            create_offer_chain(booking, ranked_ids)
        else:
            _open_broadcast(booking, ranked_ids)

    logger.info(
        "Booking %s created by customer %s (%s, %s, %d candidate(s))",
        booking.id, customer.id, dispatch_mode, sort_preference, len(ranked_ids),
    )
    return BookingResult(
        success=True,
        booking=booking,
        message=booking.auto_assign_message,
        extra={
            "candidates": [c.as_dict() for c in ranking.candidates] if ranking else [],
            "fallback_note": fallback_note,
        },
    )


def _open_broadcast(booking: Booking, ranked_ids: List[int]):
    """Announce the booking to every ranked provider at once."""
    booking.pending_providers = list(ranked_ids)
    booking.pending_expires_at = timezone.now() + pending_window()
    if not ranked_ids:
        booking.auto_assign_message = NO_LIVE_PROVIDERS_MESSAGE
        run_after_commit(notify_customer_event, "no_providers_available", booking, NO_LIVE_PROVIDERS_MESSAGE)
    elif not booking.auto_assign_message:
        booking.auto_assign_message = SEARCHING_MESSAGE
    save_booking(booking, ["pending_providers", "pending_expires_at", "auto_assign_message"])

    for provider_id in ranked_ids:
        run_after_commit(
            notify_provider_event, "booking_available", booking, provider_id,
            "A new booking is open near you.",
        )


def create_booking_multi(customer, template_id, longitude, latitude, sort_preference=SORT_RATING, **kwargs) -> BookingResult:
    """
    Best-effort booking against a service template.

    Zero live providers still creates the booking, left exhausted with the
    no-live-providers message.
    """
    try:
        template = ServiceTemplate.objects.get(pk=template_id)
    except ServiceTemplate.DoesNotExist:
        raise NotFoundError("Service template not found")
    if not template.is_active:
        raise InvalidRequestError("Service template is not active")

    return create_dispatch(customer, template, latitude, longitude, sort_preference, strict=False, **kwargs)


def create_booking_with_questionnaire(customer, catalog_id, longitude, latitude, sort_preference=SORT_RATING,
                                      answers=None, **kwargs) -> BookingResult:
    """Strict booking against a catalog entry; refuses when nobody is live."""
    try:
        catalog = ServiceCatalog.objects.get(pk=catalog_id)
    except ServiceCatalog.DoesNotExist:
        raise NotFoundError("Service catalog entry not found")
    if not catalog.is_active:
        raise InvalidRequestError("Service catalog entry is not active")

    return create_dispatch(
        customer, catalog, latitude, longitude, sort_preference,
        strict=True, service_details=answers or {}, **kwargs,
    )


def cancel_booking(user, booking_id, reason: str = "") -> BookingResult:
    """
    Cancel a booking (its customer or an admin).

    Withdraws any pending offer, frees an assigned provider and tells
    everyone who was looking at the booking.
    """
    with logged_database_errors("cancel", booking_id, user.id), transaction.atomic():
        booking = lock_booking(booking_id)
        if booking.customer_id != user.id and not _is_admin(user):
            raise ForbiddenError("Not authorized")
        if booking.status not in ("requested", "in_progress"):
            raise ConflictError(f"Cannot cancel - booking is already {booking.status}")

        now = timezone.now()
        notify_ids = set()
        current = booking.current_offer()
        if current is not None:
            current.status = "expired"
            current.responded_at = now
            current.save(update_fields=["status", "responded_at"])
            notify_ids.add(current.provider_id)
        if booking.dispatch_mode == RESPONSE_SET and booking.status == "requested":
            notify_ids.update(booking.pending_providers or [])
        if booking.provider_id:
            release_provider(booking.provider_id)
            notify_ids.add(booking.provider_id)

        booking.status = "cancelled"
        booking.overall_status = "cancelled"
        booking.cancelled_at = now
        booking.cancellation_reason = reason
        booking.pending_providers = []
        booking.provider_response_timeout = None
        booking.auto_assign_message = ""
        save_booking(booking, ["status", "overall_status", "cancelled_at", "cancellation_reason",
                               "pending_providers", "provider_response_timeout", "auto_assign_message"])

        for provider_id in notify_ids:
            run_after_commit(
                notify_provider_event, "booking_cancelled", booking, provider_id,
                "The customer cancelled this booking.",
            )

    logger.info("Booking %s cancelled by user %s", booking.id, user.id)
    return BookingResult(
        success=True,
        booking=booking,
        message="Booking cancelled successfully",
        extra={"was_assigned": booking.provider_id is not None},
    )


# ===================== Provider Operations =====================

def accept_booking(provider, booking_id) -> BookingResult:
    """Accept a booking through whichever dispatch mode it was created with."""
    if _dispatch_mode(booking_id) == OFFERS_QUEUE:
        booking = accept_offer(booking_id, provider)
    else:
        booking = _accept_response(booking_id, provider)
    return BookingResult(success=True, booking=booking, message="Booking accepted. Head to the customer's location.")


def reject_booking(provider, booking_id, reason: str = "") -> BookingResult:
    """Decline a booking through whichever dispatch mode it was created with."""
    if _dispatch_mode(booking_id) == OFFERS_QUEUE:
        booking = decline_offer(booking_id, provider)
        return BookingResult(
            success=True,
            booking=booking,
            message="Offer declined.",
            extra={"next_provider": getattr(booking.current_offer(), "provider_id", None)},
        )
    return _reject_response(booking_id, provider, reason)


def _check_audience(booking: Booking, provider):
    if provider.id not in (booking.pending_providers or []):
        raise ForbiddenError("This booking was not offered to you")


def _accept_response(booking_id, provider) -> Booking:
    with logged_database_errors("accept", booking_id, provider.id), transaction.atomic():
        booking = lock_booking(booking_id)
        previous = booking.provider_responses.filter(provider=provider).first()
        if previous is not None and previous.status == "rejected":
            raise ForbiddenError("You already rejected this booking")
        if booking.status != "requested" or booking.overall_status != "pending":
            raise ConflictError(f"Cannot accept now: booking is {booking.status}")
        _check_audience(booking, provider)

        now = timezone.now()
        ProviderResponse.objects.create(booking=booking, provider=provider, status="accepted", responded_at=now)
        losers = [pid for pid in booking.pending_providers if pid != provider.id]

        booking.status = "in_progress"
        booking.overall_status = "in-progress"
        booking.provider = provider
        booking.accepted_at = now
        booking.pending_providers = []
        booking.auto_assign_message = ""
        save_booking(booking, ["status", "overall_status", "provider", "accepted_at",
                               "pending_providers", "auto_assign_message"])
        pause_provider(provider.id)

        run_after_commit(
            notify_customer_event, "booking_accepted", booking,
            "Your booking has been accepted! The provider is on the way.",
            {"provider_id": provider.id},
        )
        for provider_id in losers:
            run_after_commit(
                notify_provider_event, "booking_cancelled", booking, provider_id,
                "Another provider took this booking.",
            )

    logger.info("Provider %s won broadcast booking %s", provider.id, booking.id)
    return booking


def _reject_response(booking_id, provider, reason: str) -> BookingResult:
    with logged_database_errors("reject", booking_id, provider.id), transaction.atomic():
        booking = lock_booking(booking_id)
        previous = booking.provider_responses.filter(provider=provider).first()
        if previous is not None:
            if previous.status == "accepted":
                raise ConflictError("You already accepted this booking")
            return BookingResult(
                success=True,
                booking=booking,
                message="You already rejected this booking",
                extra={"result": ALREADY_REJECTED},
            )
        if booking.status != "requested":
            raise ConflictError(f"Cannot reject now: booking is {booking.status}")
        _check_audience(booking, provider)

        ProviderResponse.objects.create(
            booking=booking, provider=provider, status="rejected",
            reason=reason, responded_at=timezone.now(),
        )

        fields = []
        rejected = set(booking.provider_responses.filter(status="rejected").values_list("provider_id", flat=True))
        if rejected.issuperset(booking.pending_providers):
            booking.auto_assign_message = NO_LIVE_PROVIDERS_MESSAGE
            fields.append("auto_assign_message")
            run_after_commit(notify_customer_event, "no_providers_available", booking, NO_LIVE_PROVIDERS_MESSAGE)
        save_booking(booking, fields)

    logger.info("Provider %s rejected broadcast booking %s", provider.id, booking.id)
    return BookingResult(success=True, booking=booking, message="Booking rejected.", extra={"result": "rejected"})


def complete_booking(provider, booking_id) -> BookingResult:
    """Mark an in-progress booking done and put the provider back on the market."""
    with logged_database_errors("complete", booking_id, provider.id), transaction.atomic():
        booking = lock_booking(booking_id)
        if booking.provider_id != provider.id:
            raise ForbiddenError("This booking is not assigned to you")
        if booking.status != "in_progress":
            raise ConflictError(f"Cannot complete - booking is {booking.status}")

        booking.status = "completed"
        booking.overall_status = "completed"
        booking.completed_at = timezone.now()
        save_booking(booking, ["status", "overall_status", "completed_at"])
        release_provider(provider.id, job_completed=True)

        run_after_commit(
            notify_customer_event, "booking_completed", booking,
            "Your booking has been completed. Thank you!",
        )

    logger.info("Provider %s completed booking %s", provider.id, booking.id)
    return BookingResult(success=True, booking=booking, message="Booking completed successfully")


# ===================== Queries =====================

def list_available_bookings(provider) -> List[Booking]:
    """Open broadcast bookings this provider may still accept or reject."""
    now = timezone.now()
    responded = ProviderResponse.objects.filter(provider=provider).values_list("booking_id", flat=True)
    open_bookings = (
        Booking.objects
        .filter(
            dispatch_mode=RESPONSE_SET,
            status="requested",
            overall_status="pending",
            pending_expires_at__gt=now,
        )
        .exclude(id__in=responded)
        .select_related("service_template", "service_catalog")
        .order_by("pending_expires_at")
    )
    # JSON containment lookups are not portable, so filter the audience here
    return [b for b in open_bookings if provider.id in (b.pending_providers or [])]


def get_booking_candidates(booking_id, requester) -> Dict[str, Any]:
    """Re-run discovery and ranking for a booking as it stands now."""
    try:
        booking = Booking.objects.select_related("service_template", "service_catalog").get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError("Booking not found")
    if booking.customer_id != requester.id and not _is_admin(requester):
        raise ForbiddenError("Not authorized")

    source = booking.service_template or booking.service_catalog
    if source is None:
        raise NotFoundError("Booking has no service to match")

    candidates = discover_candidates(source, booking.latitude, booking.longitude)
    ranking = rank_candidates(candidates, booking.sort_preference) if candidates else None
    return {
        "booking_id": booking.id,
        "sort_preference": booking.sort_preference,
        "fallback_note": ranking.fallback_note if ranking else None,
        "candidates": [c.as_dict() for c in ranking.candidates] if ranking else [],
    }
