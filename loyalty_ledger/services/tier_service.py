"""
Tier resolution.

Tiers are never stored as authoritative state: they are derived from the
balance on every read through the fixed threshold table below.
"""

from dataclasses import dataclass


BRONZE = "BRONZE"
PLATA = "PLATA"
ORO = "ORO"
PLATINO = "PLATINO"
DIAMANTE = "DIAMANTE"

# (tier, minimum balance), ascending
TIER_THRESHOLDS = (
    (BRONZE, 0),
    (PLATA, 1000),
    (ORO, 5000),
    (PLATINO, 15000),
    (DIAMANTE, 50000),
)

TIERS = tuple(name for name, _ in TIER_THRESHOLDS)

DEFAULT_BENEFITS_BY_TIER = {
    BRONZE: {
        "purchase_discount_pct": 2,
        "birthday_bonus_points": 100,
        "special_promotions": False,
    },
    PLATA: {
        "purchase_discount_pct": 5,
        "birthday_bonus_points": 250,
        "special_promotions": True,
        "free_shipping_min_purchase": 100,
    },
    ORO: {
        "purchase_discount_pct": 8,
        "birthday_bonus_points": 500,
        "special_promotions": True,
        "free_shipping_min_purchase": 50,
        "priority_support": True,
    },
    PLATINO: {
        "purchase_discount_pct": 12,
        "birthday_bonus_points": 1000,
        "special_promotions": True,
        "free_shipping_always": True,
        "priority_support": True,
        "exclusive_products": True,
    },
    DIAMANTE: {
        "purchase_discount_pct": 15,
        "birthday_bonus_points": 2000,
        "special_promotions": True,
        "free_shipping_always": True,
        "priority_support": True,
        "exclusive_products": True,
        "personal_manager": True,
        "exclusive_events": True,
    },
}


@dataclass(frozen=True)
class TierInfo:
    current: str
    next_tier: str | None
    points_to_next: int | None
    progress_pct: float | None


def tier_of(balance: int) -> str:
    points = int(balance or 0)
    current = BRONZE
    for name, minimum in TIER_THRESHOLDS:
        if points >= minimum:
            current = name
    return current


def tier_rank(tier: str) -> int:
    return TIERS.index(tier)


def tier_minimum(tier: str) -> int:
    return dict(TIER_THRESHOLDS)[tier]


def next_tier_of(tier: str) -> str | None:
    rank = tier_rank(tier)
    if rank + 1 < len(TIERS):
        return TIERS[rank + 1]
    return None


def compute_tier(balance: int) -> TierInfo:
    points = int(balance or 0)
    current = tier_of(points)
    nxt = next_tier_of(current)
    if nxt is None:
        return TierInfo(current=current, next_tier=None, points_to_next=None, progress_pct=None)

    needed = tier_minimum(nxt)
    return TierInfo(
        current=current,
        next_tier=nxt,
        points_to_next=needed - points,
        progress_pct=round(points * 100 / needed, 2),
    )


def benefits_of(tier: str, program) -> dict:
    """Benefits configured for ``tier``, falling back to the BRONZE set."""
    configured = (program.benefits_by_tier if program is not None else None) or DEFAULT_BENEFITS_BY_TIER
    if tier in configured:
        return dict(configured[tier])
    return dict(configured.get(BRONZE) or {})
