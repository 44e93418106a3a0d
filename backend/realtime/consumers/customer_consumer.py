"""Customer WebSocket consumer for booking progress updates."""

from .base import BaseConsumer
from realtime.notifications import customer_group


class CustomerConsumer(BaseConsumer):
    """
    WebSocket consumer for customers.

    Receives booking_accepted, no_providers_available, booking_expired and
    booking_completed events for the customer's own bookings.
    """

    required_role = "customer"

    def group_for_user(self) -> str:
        return customer_group(self.user_id)
