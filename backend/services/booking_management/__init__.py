"""
Booking management service - Booking lifecycle operations.

This module handles:
    - Creating bookings (template and questionnaire flows)
    - Accepting/rejecting bookings in either dispatch mode
    - Completing and cancelling bookings
    - Provider-facing booking queries
"""

from .booking_lifecycle import (
    BookingResult,
    create_dispatch,
    create_booking_multi,
    create_booking_with_questionnaire,
    accept_booking,
    reject_booking,
    cancel_booking,
    complete_booking,
    list_available_bookings,
    get_booking_candidates,
)
