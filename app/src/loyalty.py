from decimal import ROUND_FLOOR, Decimal
from typing import Optional, Tuple

from app.src.enums import LoyaltyTier
from app.src.fare import toAmount
from app.src.constants import (
    POINTS_PER_CURRENCY_UNIT,
    REDEMPTION_RATE,
    TIER_GOLD_POINTS,
    TIER_PLATINUM_POINTS,
)

# Lifetime points needed to reach each tier
TIER_THRESHOLDS = {
    LoyaltyTier.SILVER: 0,
    LoyaltyTier.GOLD: TIER_GOLD_POINTS,
    LoyaltyTier.PLATINUM: TIER_PLATINUM_POINTS,
}


def earnedPoints(amount) -> int:
    """Points earned for a paid amount, rounded down to whole points."""
    points = toAmount(amount) * POINTS_PER_CURRENCY_UNIT
    return max(int(points.to_integral_value(rounding=ROUND_FLOOR)), 0)


def discountFor(points: int) -> Decimal:
    return toAmount(Decimal(points) * REDEMPTION_RATE)


def tierFor(lifetimePoints: int, currentTier: int = LoyaltyTier.SILVER) -> LoyaltyTier:
    """Highest tier reached by the lifetime points. Tiers are never lost."""
    reached = max(
        tier for tier, threshold in TIER_THRESHOLDS.items() if lifetimePoints >= threshold
    )
    return LoyaltyTier(max(reached, currentTier))


def nextTier(lifetimePoints: int, currentTier: int) -> Tuple[Optional[LoyaltyTier], int]:
    """
    Return the next tier and the lifetime points still missing to reach it.
    The top tier has no next tier.
    """
    tier = tierFor(lifetimePoints, currentTier)
    if tier == max(LoyaltyTier):
        return None, 0
    upcoming = LoyaltyTier(tier + 1)
    return upcoming, max(TIER_THRESHOLDS[upcoming] - lifetimePoints, 0)
