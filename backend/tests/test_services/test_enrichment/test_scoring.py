"""Tests for the depscore calculation."""

import math

from depextract.models.project import AssetTier
from depextract.services.scoring import (
    DepscoreContext,
    calculate_depscore,
    environmental_multiplier,
    reputation_weight,
    round_half_up,
)


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(48.5) == 49

    def test_below_half(self):
        assert round_half_up(48.49) == 48


class TestCalculateDepscore:
    def test_capped_at_100(self):
        ctx = DepscoreContext(cvss=10.0, cisa_kev=True, asset_tier=AssetTier.CROWN_JEWELS)
        assert calculate_depscore(ctx) == 100

    def test_exploited_crown_jewel(self):
        ctx = DepscoreContext(
            cvss=9.0,
            epss=0.5,
            cisa_kev=True,
            is_reachable=True,
            asset_tier=AssetTier.CROWN_JEWELS,
        )
        assert calculate_depscore(ctx) == 100

    def test_unreachable_non_production_floor(self):
        ctx = DepscoreContext(
            cvss=2.0,
            epss=0.0,
            cisa_kev=False,
            is_reachable=False,
            asset_tier=AssetTier.NON_PRODUCTION,
        )
        # 20 * 0.6 * 0.6 * 0.1 = 0.72
        assert calculate_depscore(ctx) == 1

    def test_baseline_external(self):
        # 90 * 0.6 * 1.1 = 59.4
        assert calculate_depscore(DepscoreContext(cvss=9.0)) == 59

    def test_low_impact_rounds_to_one(self):
        ctx = DepscoreContext(
            cvss=0.5,
            asset_tier=AssetTier.NON_PRODUCTION,
            is_dev_dependency=True,
        )
        # 5 * 0.6 * 0.6 * 0.4 = 0.72
        assert calculate_depscore(ctx) == 1

    def test_zero_cvss(self):
        assert calculate_depscore(DepscoreContext(cvss=0.0, cisa_kev=True)) == 0

    def test_inputs_are_clamped(self):
        high = calculate_depscore(DepscoreContext(cvss=42.0, epss=5.0))
        assert high == calculate_depscore(DepscoreContext(cvss=10.0, epss=1.0))
        assert calculate_depscore(DepscoreContext(cvss=math.nan)) == 0

    def test_kev_beats_any_epss_below_one(self):
        base = DepscoreContext(cvss=5.0, epss=0.9)
        kev = base.model_copy(update={"cisa_kev": True})
        assert calculate_depscore(kev) >= calculate_depscore(base)

    def test_monotonic_in_epss(self):
        scores = [calculate_depscore(DepscoreContext(cvss=6.0, epss=e / 10)) for e in range(11)]
        assert scores == sorted(scores)

    def test_monotonic_in_cvss(self):
        scores = [calculate_depscore(DepscoreContext(cvss=c / 2)) for c in range(21)]
        assert scores == sorted(scores)

    def test_unreachable_lowers_score(self):
        reachable = DepscoreContext(cvss=8.0, asset_tier=AssetTier.INTERNAL)
        unreachable = reachable.model_copy(update={"is_reachable": False})
        assert calculate_depscore(unreachable) < calculate_depscore(reachable)

    def test_transitive_and_dev_weights(self):
        direct = calculate_depscore(DepscoreContext(cvss=8.0, is_direct=True))
        transitive = calculate_depscore(DepscoreContext(cvss=8.0, is_direct=False))
        dev = calculate_depscore(DepscoreContext(cvss=8.0, is_dev_dependency=True))
        # 80 * 0.6 * 1.1 = 52.8; * 0.75 = 39.6; * 0.4 = 21.12
        assert (direct, transitive, dev) == (53, 40, 21)

    def test_unknown_context_weighs_one(self):
        assert calculate_depscore(DepscoreContext(cvss=8.0)) == calculate_depscore(
            DepscoreContext(cvss=8.0, is_direct=True, is_dev_dependency=False)
        )

    def test_malicious_and_reputation(self):
        plain = calculate_depscore(DepscoreContext(cvss=5.0))
        assert calculate_depscore(DepscoreContext(cvss=5.0, is_malicious=True)) > plain
        assert reputation_weight(10) == 1.15
        assert reputation_weight(50) == 1.0
        assert reputation_weight(90) == 0.95

    def test_tier_ordering(self):
        scores = [
            calculate_depscore(DepscoreContext(cvss=7.0, asset_tier=tier))
            for tier in (
                AssetTier.NON_PRODUCTION,
                AssetTier.INTERNAL,
                AssetTier.EXTERNAL,
                AssetTier.CROWN_JEWELS,
            )
        ]
        assert scores == sorted(scores)


class TestCustomTierMultiplier:
    def test_replaces_named_tier(self):
        ctx = DepscoreContext(cvss=5.0, tier_multiplier=1.5, asset_tier=AssetTier.NON_PRODUCTION)
        assert math.isclose(environmental_multiplier(ctx), 1.5)

    def test_unreachable_weight_scales_with_multiplier(self):
        ctx = DepscoreContext(cvss=5.0, tier_multiplier=1.5, is_reachable=False)
        # 1.5 * (0.1 + 0.7)
        assert math.isclose(environmental_multiplier(ctx), 1.2)

    def test_unreachable_weight_never_exceeds_one(self):
        reachable = DepscoreContext(cvss=5.0, tier_multiplier=3.0)
        unreachable = reachable.model_copy(update={"is_reachable": False})
        assert environmental_multiplier(unreachable) == environmental_multiplier(reachable)
