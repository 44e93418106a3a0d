"""
Dispatch service - Provider discovery, ranking and the offer queue.

This module handles:
    - Finding live providers for a requested service
    - Ranking them by the customer's sort preference
    - Offering the booking to one provider at a time
    - Expiring overdue offers and stale bookings
"""

from .discovery import Candidate, discover_candidates, find_matching_services
from .ranking import RankingResult, SORT_PREFERENCES, rank_candidates
from .offer_engine import (
    create_offer_chain,
    advance_offer,
    expire_if_needed,
    accept_offer,
    decline_offer,
    force_advance_offer,
    get_offers_debug,
    list_my_pending_offers,
)
from .sweeps import process_offer_timeouts, expire_stale_bookings

from .exceptions import (
    DispatchError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
    OfferExpiredError,
    CorruptedOfferError,
    StaleBookingError,
    NoProvidersAvailableError,
    InvalidRequestError,
)
