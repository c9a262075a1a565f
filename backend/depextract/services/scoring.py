"""
Depscore: context-aware vulnerability score (0-100).

    base_impact   = cvss * 10
    threat        = 1.2 if known exploited else 0.6 + 0.6 * sqrt(epss)
    environmental = tier_weight * (1.0 if reachable else unreachable_weight)
    contextual    = directness * dev_dependency * malicious * reputation
    depscore      = min(100, round_half_up(base_impact * threat * environmental * contextual))

The weight tables are fixed. A project may carry a custom tier multiplier
instead of a named tier; its unreachable weight is then
``0.1 + 0.7 * multiplier / 1.5``, capped at 1.0 so reachability never lowers
a score.
"""

import math
from typing import Dict, Optional

from pydantic import BaseModel

from depextract.models.project import AssetTier, DEFAULT_ASSET_TIER

TIER_WEIGHT: Dict[AssetTier, float] = {
    AssetTier.CROWN_JEWELS: 1.3,
    AssetTier.EXTERNAL: 1.1,
    AssetTier.INTERNAL: 0.9,
    AssetTier.NON_PRODUCTION: 0.6,
}

UNREACHABLE_WEIGHT: Dict[AssetTier, float] = {
    AssetTier.CROWN_JEWELS: 0.8,
    AssetTier.EXTERNAL: 0.5,
    AssetTier.INTERNAL: 0.3,
    AssetTier.NON_PRODUCTION: 0.1,
}

KNOWN_EXPLOITED_THREAT = 1.2
TRANSITIVE_WEIGHT = 0.75
DEV_DEPENDENCY_WEIGHT = 0.4
MALICIOUS_WEIGHT = 1.3
MAX_SCORE = 100


class DepscoreContext(BaseModel):
    cvss: float
    epss: float = 0.0
    cisa_kev: bool = False
    is_reachable: bool = True
    asset_tier: AssetTier = DEFAULT_ASSET_TIER
    tier_multiplier: Optional[float] = None

    # Optional dependency context; None means "unknown" and weighs 1.0
    is_direct: Optional[bool] = None
    is_dev_dependency: Optional[bool] = None
    is_malicious: Optional[bool] = None
    reputation_score: Optional[float] = None


def _clamp(value: float, low: float, high: float) -> float:
    if value is None or math.isnan(value):
        return low
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def reputation_weight(score: Optional[float]) -> float:
    if score is None:
        return 1.0
    if score < 30:
        return 1.15
    if score > 70:
        return 0.95
    return 1.0


def environmental_multiplier(ctx: DepscoreContext) -> float:
    if ctx.tier_multiplier is not None:
        tier_weight = ctx.tier_multiplier
        unreachable = min(1.0, 0.1 + 0.7 * (ctx.tier_multiplier / 1.5))
    else:
        tier_weight = TIER_WEIGHT[ctx.asset_tier]
        unreachable = UNREACHABLE_WEIGHT[ctx.asset_tier]
    return tier_weight * (1.0 if ctx.is_reachable else unreachable)


def contextual_multiplier(ctx: DepscoreContext) -> float:
    directness = TRANSITIVE_WEIGHT if ctx.is_direct is False else 1.0
    dev = DEV_DEPENDENCY_WEIGHT if ctx.is_dev_dependency is True else 1.0
    malicious = MALICIOUS_WEIGHT if ctx.is_malicious is True else 1.0
    return directness * dev * malicious * reputation_weight(ctx.reputation_score)


def calculate_depscore(ctx: DepscoreContext) -> int:
    """Score a vulnerability in its project context. Pure and deterministic."""
    cvss = _clamp(ctx.cvss, 0.0, 10.0)
    epss = _clamp(ctx.epss, 0.0, 1.0)

    base_impact = cvss * 10
    threat = KNOWN_EXPLOITED_THREAT if ctx.cisa_kev else 0.6 + 0.6 * math.sqrt(epss)

    score = base_impact * threat * environmental_multiplier(ctx) * contextual_multiplier(ctx)
    return max(0, min(MAX_SCORE, round_half_up(score)))
