import logging

from django.db.models import F
from django.utils import timezone

from providers.models import ProviderProfile

logger = logging.getLogger(__name__)


def is_provider_available(provider_id) -> bool:
    """Fresh read of a provider's live flag (no cached profile)."""
    return ProviderProfile.objects.filter(user_id=provider_id, is_available=True).exists()


def update_provider_availability(profile: ProviderProfile, is_available: bool):
    """Go live / go offline."""
    profile.is_available = is_available
    if not is_available:
        profile.is_live_tracking = False
    profile.save(update_fields=["is_available", "is_live_tracking"])
    logger.info("Provider %s availability -> %s", profile.user_id, is_available)
    return profile


def lock_provider_profile(provider_id):
    """Row-lock the provider's profile so their accepts run one at a time."""
    return ProviderProfile.objects.select_for_update().filter(user_id=provider_id).first()


def pause_provider(provider_id):
    """
    Auto-pause after accepting a job so the provider stops receiving offers
    while the service is in progress.
    """
    ProviderProfile.objects.filter(user_id=provider_id).update(
        is_available=False,
        is_live_tracking=False,
    )


def release_provider(provider_id, job_completed: bool = False):
    """Make a provider available again after a job ends or is cancelled."""
    updates = {"is_available": True}
    if job_completed:
        updates["completed_jobs"] = F("completed_jobs") + 1
    ProviderProfile.objects.filter(user_id=provider_id).update(**updates)


def update_provider_location(profile: ProviderProfile, lat, lon):
    """Store the provider's current coordinates."""
    profile.current_latitude = lat
    profile.current_longitude = lon
    profile.last_location_update = timezone.now()
    profile.save(update_fields=["current_latitude", "current_longitude", "last_location_update"])
    return profile
