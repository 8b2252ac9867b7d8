"""Alert tiers and the utilization classifier."""

from typing import Optional

# Checked highest first; the first match wins
TIERS = (80, 60, 40, 20)
TIER_WIDTH = 20
LOWEST_TIER = TIERS[-1]


def classify(utilization: float) -> Optional[int]:
    """Return the highest tier ``utilization`` has reached, or None.

    Each tier covers ``[tier, tier + 20)``; the top tier has no upper bound
    so upstream values above 100% still classify as 80.
    """
    for tier in TIERS:
        if tier <= utilization < tier + TIER_WIDTH:
            return tier
    if utilization >= TIERS[0]:
        return TIERS[0]
    return None


def tier_style(tier: int) -> tuple[int, str]:
    """Embed color and emoji for a tier."""
    if tier >= 80:
        return 0xFF0000, "🔴"
    if tier >= 60:
        return 0xFF8C00, "🟠"
    if tier >= 40:
        return 0xFFD700, "🟡"
    return 0x00FF00, "🟢"
