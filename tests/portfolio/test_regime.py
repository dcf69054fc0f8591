"""Tests for macro regime assessment and weight tilts"""

import pytest

from quant_analytics.config import RegimeConfig
from quant_analytics.data import RegimeSnapshot
from quant_analytics.errors import InvalidInputError
from quant_analytics.portfolio import MacroRegime, RegimeAdjuster, Stance


class TestMacroRegime:
    """Quadrants and their static allocations"""

    def test_from_directions(self):
        assert MacroRegime.from_directions(True, True) == MacroRegime.GROWTH_INFLATION_RISING
        assert MacroRegime.from_directions(True, False) == MacroRegime.GROWTH_RISING_INFLATION_FALLING
        assert MacroRegime.from_directions(False, True) == MacroRegime.GROWTH_FALLING_INFLATION_RISING
        assert MacroRegime.from_directions(False, False) == MacroRegime.GROWTH_FALLING_INFLATION_FALLING

    def test_every_regime_covers_every_class(self):
        for regime in MacroRegime:
            assert set(regime.allocation) == {'stocks', 'bonds', 'commodities', 'tips', 'cash'}
            assert regime.description

    def test_deflation_favors_bonds(self):
        allocation = MacroRegime.GROWTH_FALLING_INFLATION_FALLING.allocation
        assert allocation['bonds'] == Stance.OVERWEIGHT
        assert allocation['stocks'] == Stance.UNDERWEIGHT


class TestAssessRegime:
    """Quadrant pick and confidence"""

    def test_confidence_from_strengths(self):
        assessment = RegimeAdjuster().assess_regime(True, False, 60.0, 40.0)
        assert assessment.regime == MacroRegime.GROWTH_RISING_INFLATION_FALLING
        assert assessment.confidence == 70
        assert assessment.risks

    def test_confidence_is_clamped(self):
        adjuster = RegimeAdjuster()
        assert adjuster.assess_regime(False, True, 200.0, 200.0).confidence == 95
        assert adjuster.assess_regime(False, True).confidence == 50

    def test_from_snapshot(self):
        assessment = RegimeAdjuster().assess_regime(RegimeSnapshot(False, True, 20.0, 80.0))
        assert assessment.regime == MacroRegime.GROWTH_FALLING_INFLATION_RISING
        assert assessment.confidence == 70
        assert assessment.to_dict()['allocation']['commodities'] == 'OVERWEIGHT'

    def test_inflation_required(self):
        with pytest.raises(InvalidInputError):
            RegimeAdjuster().assess_regime(True)


class TestAdjust:
    """Stance multipliers applied to weights"""

    def test_tilt_and_renormalize(self):
        adjusted = RegimeAdjuster().adjust({'SPY': 0.5, 'TLT': 0.5}, MacroRegime.GROWTH_FALLING_INFLATION_FALLING)
        assert adjusted['SPY'] == pytest.approx(0.4)
        assert adjusted['TLT'] == pytest.approx(0.6)
        assert sum(adjusted.values()) == pytest.approx(1.0)

    def test_accepts_assessment(self):
        adjuster = RegimeAdjuster()
        assessment = adjuster.assess_regime(False, False)
        adjusted = adjuster.adjust({'SPY': 0.5, 'TLT': 0.5}, assessment)
        assert adjusted['TLT'] == pytest.approx(0.6)

    def test_class_lookup(self):
        adjuster = RegimeAdjuster()
        assert adjuster.class_of('tlt') == 'bonds'
        assert adjuster.class_of('XYZ') == 'stocks'

    def test_unknown_class_keeps_weight_ratio(self):
        adjuster = RegimeAdjuster(RegimeConfig(asset_classes={'BTC': 'crypto'}))
        adjusted = adjuster.adjust({'BTC': 0.5, 'SPY': 0.5}, MacroRegime.GROWTH_INFLATION_RISING)
        assert adjusted['BTC'] == pytest.approx(0.5 / 1.1)
        assert adjusted['SPY'] == pytest.approx(0.6 / 1.1)

    def test_configured_multipliers(self):
        adjuster = RegimeAdjuster(RegimeConfig(overweight_multiplier=1.5))
        table = adjuster.multiplier_table(MacroRegime.GROWTH_INFLATION_RISING)
        assert table['stocks'] == 1.5
        assert table['bonds'] == 0.8

    def test_rejects_bad_weights(self):
        adjuster = RegimeAdjuster()
        with pytest.raises(InvalidInputError):
            adjuster.adjust({}, MacroRegime.GROWTH_INFLATION_RISING)
        with pytest.raises(InvalidInputError):
            adjuster.adjust({'SPY': 1.2, 'TLT': -0.2}, MacroRegime.GROWTH_INFLATION_RISING)
