# vendora_dispatch/config.py
"""
Configuration for the delivery dispatch service.

Pricing and geo constants are plain module constants. Deployment settings
(Supabase credentials, timeouts, windows) are read from the environment,
with `.env` support through python-dotenv.
"""

import os
from dataclasses import dataclass
from typing import Final, Optional

from dotenv import load_dotenv

# =============================================================================
# GEO AND PRICING
# =============================================================================

EARTH_RADIUS_KM: Final[float] = 6371.0

FEE_BLOCK_KM: Final[float] = 3.0
"""Distance covered by one billable block."""

FEE_PER_BLOCK_KOBO: Final[int] = 1000 * 100
"""₦1,000 per started block, in kobo."""

MINUTES_PER_KM: Final[float] = 3.0
MIN_DURATION_MINUTES: Final[int] = 15

# =============================================================================
# DISPATCH DEFAULTS
# =============================================================================

DEFAULT_SCHEMA = "public"
DEFAULT_STORE_TIMEOUT_SECONDS = 10.0
DEFAULT_RIDER_ACTIVE_WINDOW_SECONDS = 120
DEFAULT_OFFER_TIMEOUT_SECONDS = 120
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8001

DEFAULT_PICKUP_ADDRESS = "Store location"
DEFAULT_DELIVERY_ADDRESS = "Customer location"


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    schema: str = DEFAULT_SCHEMA
    store_timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS
    rider_active_window_seconds: int = DEFAULT_RIDER_ACTIVE_WINDOW_SECONDS
    offer_timeout_seconds: int = DEFAULT_OFFER_TIMEOUT_SECONDS
    log_level: str = DEFAULT_LOG_LEVEL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from e


def load_settings() -> Settings:
    """
    Build Settings from the environment (and `.env`, if present).

    SUPABASE_SERVICE_ROLE_KEY is preferred; SUPABASE_KEY is accepted for
    scripts that already use it.
    """
    load_dotenv()

    return Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY"),
        schema=os.getenv("SCHEMA") or DEFAULT_SCHEMA,
        store_timeout_seconds=_env_number("STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT_SECONDS, float),
        rider_active_window_seconds=_env_number(
            "RIDER_ACTIVE_WINDOW_SECONDS", DEFAULT_RIDER_ACTIVE_WINDOW_SECONDS, int
        ),
        offer_timeout_seconds=_env_number("OFFER_TIMEOUT_SECONDS", DEFAULT_OFFER_TIMEOUT_SECONDS, int),
        log_level=(os.getenv("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        host=os.getenv("HOST") or DEFAULT_HOST,
        port=_env_number("PORT", DEFAULT_PORT, int),
    )
