"""Provider WebSocket consumer for booking offers and live location."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from realtime.notifications import provider_group

logger = logging.getLogger(__name__)


class ProviderConsumer(BaseConsumer):
    """
    WebSocket consumer for providers.

    Handles:
        - Booking offer / expiry / cancellation notifications
        - Location updates (stored on the provider profile)
        - Going live / offline
    """

    required_role = "provider"

    def group_for_user(self) -> str:
        return provider_group(self.user_id)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "provider_location_update":
            await self._handle_location_update(data)
        elif msg_type == "provider_status_update":
            await self._handle_status_update(data)
        else:
            await super().handle_message(msg_type, data)

    async def _handle_location_update(self, data: Dict[str, Any]):
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("provider_location_update requires latitude and longitude")
            return

        try:
            lat = float(lat)
            lon = float(lon)
        except (TypeError, ValueError):
            await self.send_error("latitude and longitude must be numbers")
            return
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            await self.send_error("Coordinates out of range")
            return

        await self._save_location(lat, lon)
        await self.send_json({"type": "location_updated", "latitude": lat, "longitude": lon})

    async def _handle_status_update(self, data: Dict[str, Any]):
        is_available = data.get("is_available")
        if not isinstance(is_available, bool):
            await self.send_error("provider_status_update requires a boolean is_available")
            return

        await self._save_availability(is_available)
        await self.send_json({"type": "status_updated", "is_available": is_available})

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _save_location(self, lat: float, lon: float):
        from decimal import Decimal
        from providers.models import ProviderProfile
        from providers.services import update_provider_location

        profile = ProviderProfile.objects.get(user_id=self.user_id)
        update_provider_location(profile, Decimal(str(round(lat, 6))), Decimal(str(round(lon, 6))))

    @database_sync_to_async
    def _save_availability(self, is_available: bool):
        from providers.models import ProviderProfile
        from providers.services import update_provider_availability

        profile = ProviderProfile.objects.get(user_id=self.user_id)
        update_provider_availability(profile, is_available)
