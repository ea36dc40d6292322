# vendora_dispatch/services/pricing_service.py

import math

from config import FEE_BLOCK_KM, FEE_PER_BLOCK_KOBO, MIN_DURATION_MINUTES, MINUTES_PER_KM


def calculate_delivery_fee(distance_km: float) -> int:
    """
    ₦1,000 per started 3 km block, in kobo.

    There is no minimum charge: a zero distance costs zero.
    """
    return math.ceil(distance_km / FEE_BLOCK_KM) * FEE_PER_BLOCK_KOBO


def estimate_duration_minutes(distance_km: float) -> int:
    """3 minutes per km, never less than 15 minutes."""
    # half-up, so 16.5 -> 17 (built-in round() would give 16)
    minutes = math.floor(distance_km * MINUTES_PER_KM + 0.5)
    return max(MIN_DURATION_MINUTES, minutes)
