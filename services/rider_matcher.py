# vendora_dispatch/services/rider_matcher.py
import logging
import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from domain.models import RiderCandidate, RiderSession
from utils.geo import haversine_distance

logger = logging.getLogger(__name__)


def active_since(now: datetime, window_seconds: int) -> datetime:
    return now - timedelta(seconds=window_seconds)


def is_eligible(rider: RiderSession, cutoff: datetime) -> bool:
    """
    A rider can be offered work when available, seen after `cutoff`
    and located.
    """
    if not rider.is_available or not rider.has_location:
        return False
    if rider.last_seen_at is None:
        return False
    return rider.last_seen_at > cutoff


def rank_riders(
        riders: Iterable[RiderSession],
        pickup_lat: float,
        pickup_lng: float,
        *,
        cutoff: datetime,
        exclude_rider_id: Optional[str] = None,
) -> List[RiderCandidate]:
    """
    Eligible riders ordered by distance to the pickup point.

    The sort is stable, so equidistant riders keep their input order.
    Riders whose distance is not finite are dropped.
    """
    candidates: List[RiderCandidate] = []

    for rider in riders:
        if exclude_rider_id is not None and rider.id == exclude_rider_id:
            continue
        if not is_eligible(rider, cutoff):
            continue

        distance = haversine_distance(pickup_lat, pickup_lng, rider.current_lat, rider.current_lng)
        if not math.isfinite(distance):
            logger.warning("Skipping rider %s: distance to pickup is not finite", rider.id)
            continue

        candidates.append(RiderCandidate(rider=rider, distance_km=distance))

    candidates.sort(key=lambda c: c.distance_km)
    return candidates


def select_nearest_rider(
        riders: Iterable[RiderSession],
        pickup_lat: float,
        pickup_lng: float,
        *,
        cutoff: datetime,
        exclude_rider_id: Optional[str] = None,
) -> Optional[RiderCandidate]:
    """Nearest eligible rider, or None when the pool is empty."""
    ranked = rank_riders(
        riders,
        pickup_lat,
        pickup_lng,
        cutoff=cutoff,
        exclude_rider_id=exclude_rider_id,
    )
    return ranked[0] if ranked else None
