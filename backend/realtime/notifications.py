"""
Notification helpers for pushing booking dispatch events over WebSockets.

Providers listen on provider_<user_id>, customers on customer_<user_id>.
Callers schedule these through run_after_commit so nothing is pushed for a
transaction that rolls back.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def provider_group(provider_id) -> str:
    return f"provider_{provider_id}"


def customer_group(customer_id) -> str:
    return f"customer_{customer_id}"


def _booking_payload(booking) -> Dict[str, Any]:
    timeout = booking.provider_response_timeout
    return {
        "booking_id": booking.id,
        "status": booking.status,
        "overall_status": booking.overall_status,
        "dispatch_mode": booking.dispatch_mode,
        "auto_assign_message": booking.auto_assign_message or None,
        "timeout_at": timeout.isoformat() if timeout else None,
    }


def _send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available, dropping %s for %s", payload.get("type"), group)
        return False

    logger.debug("WS -> %s: %s", group, payload)
    async_to_sync(channel_layer.group_send)(group, payload)
    return True


def notify_provider_event(
    event_type: str,
    booking,
    provider_id: Optional[int],
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send a booking event to one provider.

    Args:
        event_type: Consumer handler name (booking_offer, offer_expired,
            booking_cancelled, booking_available)
        booking: Booking model instance
        provider_id: Target provider's user ID
        message: Optional human-readable message
        extra: Additional payload data

    Returns:
        True if handed to the channel layer, False otherwise
    """
    if not provider_id:
        return False

    payload = {"type": event_type, "provider_id": provider_id, **_booking_payload(booking), **(extra or {})}
    if message:
        payload["message"] = message
    return _send(provider_group(provider_id), payload)


def notify_customer_event(
    event_type: str,
    booking,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send a booking event to the booking's customer.

    Args:
        event_type: Consumer handler name (booking_accepted,
            no_providers_available, booking_expired, booking_completed)
        booking: Booking model instance
        message: Optional human-readable message
        extra: Additional payload data
    """
    if not booking.customer_id:
        return False

    payload = {"type": event_type, **_booking_payload(booking), **(extra or {})}
    if message:
        payload["message"] = message
    return _send(customer_group(booking.customer_id), payload)
