"""
Mapping from billing tiers to access levels.
"""

from typing import Optional

from shared.logging import get_logger
from .models import TierLevel

logger = get_logger("features.tiers")

FREE_TIERS = frozenset({"free"})
PAID_TIERS = frozenset({"monthly", "yearly", "lifetime"})


def map_tier(raw_tier: Optional[str]) -> TierLevel:
    """Map a raw billing tier to an access level.

    Paid tiers map to premium and the free tier to free. Anything else,
    including a missing value, maps to free and is logged: premium is
    never inferred from input we do not recognise.
    """
    normalized = raw_tier.strip().lower() if isinstance(raw_tier, str) else None

    if normalized in PAID_TIERS:
        return TierLevel.PREMIUM
    if normalized in FREE_TIERS:
        return TierLevel.FREE

    logger.warning("Unknown billing tier, defaulting to free", raw_tier=raw_tier)
    return TierLevel.FREE


def meets_tier(actor_tier: TierLevel, required: TierLevel) -> bool:
    return actor_tier.rank >= required.rank
