"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and booking event handlers.

    Subclasses should override:
        - required_role: role allowed on this endpoint (None = any)
        - group_for_user(): personal group joined on connect
        - handle_message(msg_type, data): handle incoming messages
    """

    required_role = None

    async def connect(self):
        self.user = self.scope["user"]

        if self.user.is_anonymous:
            await self.close()
            return

        self.user_id = getattr(self.user, "id", None)
        self.role = getattr(self.user, "role", None)

        if self.required_role and self.role != self.required_role:
            logger.info("Rejected %s socket for user %s (role %s)", self.required_role, self.user_id, self.role)
            await self.close()
            return

        # Track joined groups for cleanup
        self.joined_groups: Set[str] = set()
        await self._join_group(self.group_for_user())

        await self.accept()
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })

    def group_for_user(self) -> str:
        return f"user_{self.user_id}"

    async def disconnect(self, close_code):
        """Leave all joined groups on disconnect."""
        try:
            for group in list(getattr(self, "joined_groups", ())):
                await self._leave_group(group)
        except Exception:
            logger.exception("Error during disconnect for user %s", getattr(self, 'user_id', 'unknown'))

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to appropriate handlers."""
        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required")
            return

        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        if msg_type == "ping":
            await self.send_json({"type": "pong"})
            return
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        """Join a channel group and track it."""
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        """Leave a channel group and untrack it."""
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
        })

    async def _forward(self, event):
        """Relay a group_send booking event to the client unchanged."""
        await self.send_json(dict(event))

    # ---------------------- Booking Event Handlers ----------------------
    # These handle group_send events from realtime.notifications

    async def booking_offer(self, event):
        """A booking is now offered to this provider."""
        await self._forward(event)

    async def offer_expired(self, event):
        """This provider's offer timed out or was withdrawn."""
        await self._forward(event)

    async def booking_available(self, event):
        """An open-broadcast booking this provider may accept."""
        await self._forward(event)

    async def booking_cancelled(self, event):
        await self._forward(event)

    async def booking_accepted(self, event):
        await self._forward(event)

    async def no_providers_available(self, event):
        await self._forward(event)

    async def booking_expired(self, event):
        await self._forward(event)

    async def booking_completed(self, event):
        await self._forward(event)
