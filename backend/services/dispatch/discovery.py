"""
Candidate discovery: which live providers can take a booking right now.

A provider is a candidate when they list a matching service, are approved,
marked available, and have a stored location. Anything else is silently
dropped; an empty result is not an error here.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Union

from catalog.models import Service, ServiceCatalog, ServiceTemplate
from .scoring import distance_km, mix_score

logger = logging.getLogger(__name__)

ServiceSource = Union[ServiceTemplate, ServiceCatalog]


@dataclass(frozen=True)
class Candidate:
    """A provider eligible for a booking, with the figures ranking needs."""
    provider_id: int
    service_id: int
    name: str
    rating: float
    distance_km: float
    price: float

    @property
    def mix_score(self) -> float:
        return mix_score(self.rating, self.distance_km)

    def as_dict(self) -> dict:
        return {
            "provider_id": self.provider_id,
            "service_id": self.service_id,
            "name": self.name,
            "rating": self.rating,
            "distance_km": round(self.distance_km, 2),
            "price": self.price,
            "mix_score": round(self.mix_score, 3),
        }


def find_matching_services(source: ServiceSource):
    """
    Services offering the requested template, or for a catalog entry the
    services whose name contains the catalog name (falling back to an exact,
    case-insensitive category match when no name matches).
    """
    services = Service.objects.filter(is_active=True)

    if isinstance(source, ServiceTemplate):
        return services.filter(template=source)

    by_name = services.filter(name__icontains=source.name)
    if by_name.exists():
        return by_name

    logger.debug("No name match for catalog %s, falling back to category %s", source.id, source.category)
    return services.filter(category__iexact=source.category)


def discover_candidates(source: ServiceSource, latitude, longitude) -> List[Candidate]:
    """
    Build the candidate set for a booking location.

    Args:
        source: ServiceTemplate (multi flow) or ServiceCatalog (questionnaire flow)
        latitude: Customer latitude
        longitude: Customer longitude

    Returns:
        One Candidate per provider (their cheapest matching listing), unordered
    """
    services = (
        find_matching_services(source)
        .select_related("provider__provider_profile")
        .filter(
            provider__role="provider",
            provider__provider_profile__is_available=True,
            provider__provider_profile__onboarding_status="approved",
            provider__provider_profile__current_latitude__isnull=False,
            provider__provider_profile__current_longitude__isnull=False,
        )
        .order_by("price", "id")
    )

    by_provider: Dict[int, Candidate] = {}
    for service in services:
        if service.provider_id in by_provider:
            continue  # already holds the cheaper listing
        profile = service.provider.provider_profile
        by_provider[service.provider_id] = Candidate(
            provider_id=service.provider_id,
            service_id=service.id,
            name=service.provider.get_full_name() or service.provider.username,
            rating=float(profile.rating or 0),
            distance_km=distance_km(
                longitude, latitude,
                profile.current_longitude, profile.current_latitude,
            ),
            price=float(service.price or 0),
        )

    candidates = list(by_provider.values())
    logger.info(
        "Discovered %d live candidate(s) for %s %s",
        len(candidates), type(source).__name__, source.id,
    )
    return candidates
