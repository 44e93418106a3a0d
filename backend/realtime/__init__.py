"""
Realtime app for WebSocket delivery of booking dispatch events.

Key Components:
    - consumers/: WebSocket consumers (provider, customer)
    - notifications.py: Booking event notification helpers
    - middleware.py: JWT/session authentication for WebSocket connections

Usage:
    from realtime.notifications import notify_provider_event, notify_customer_event
"""
