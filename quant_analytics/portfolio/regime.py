"""
Macro Regime Adjustment
=======================
Growth x inflation quadrants, each with a static asset-class allocation
stance. Base weights are tilted by the stance multiplier of each symbol's
asset class and renormalized.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union
import logging

from ..errors import InvalidInputError, InvariantViolationError

logger = logging.getLogger(__name__)

ASSET_CLASSES = ('stocks', 'bonds', 'commodities', 'tips', 'cash')


class Stance(Enum):
    OVERWEIGHT = "OVERWEIGHT"
    NEUTRAL = "NEUTRAL"
    UNDERWEIGHT = "UNDERWEIGHT"


class MacroRegime(Enum):
    """The four growth / inflation quadrants."""
    GROWTH_INFLATION_RISING = "GROWTH_INFLATION_RISING"
    GROWTH_RISING_INFLATION_FALLING = "GROWTH_RISING_INFLATION_FALLING"
    GROWTH_FALLING_INFLATION_RISING = "GROWTH_FALLING_INFLATION_RISING"
    GROWTH_FALLING_INFLATION_FALLING = "GROWTH_FALLING_INFLATION_FALLING"

    @classmethod
    def from_directions(cls, growth_accelerating: bool, inflation_rising: bool) -> 'MacroRegime':
        if growth_accelerating:
            return cls.GROWTH_INFLATION_RISING if inflation_rising else cls.GROWTH_RISING_INFLATION_FALLING
        return cls.GROWTH_FALLING_INFLATION_RISING if inflation_rising else cls.GROWTH_FALLING_INFLATION_FALLING

    @property
    def allocation(self) -> Dict[str, Stance]:
        return _ALLOCATIONS[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_O, _N, _U = Stance.OVERWEIGHT, Stance.NEUTRAL, Stance.UNDERWEIGHT

_ALLOCATIONS = {
    MacroRegime.GROWTH_INFLATION_RISING:
        {'stocks': _O, 'bonds': _U, 'commodities': _O, 'tips': _O, 'cash': _U},
    MacroRegime.GROWTH_RISING_INFLATION_FALLING:
        {'stocks': _O, 'bonds': _N, 'commodities': _U, 'tips': _U, 'cash': _U},
    MacroRegime.GROWTH_FALLING_INFLATION_RISING:
        {'stocks': _U, 'bonds': _U, 'commodities': _O, 'tips': _O, 'cash': _N},
    MacroRegime.GROWTH_FALLING_INFLATION_FALLING:
        {'stocks': _U, 'bonds': _O, 'commodities': _U, 'tips': _U, 'cash': _N},
}

_DESCRIPTIONS = {
    MacroRegime.GROWTH_INFLATION_RISING: "Economic acceleration with rising inflation pressures",
    MacroRegime.GROWTH_RISING_INFLATION_FALLING: "Goldilocks: growth without inflation",
    MacroRegime.GROWTH_FALLING_INFLATION_RISING: "Stagflation risk: slowing growth with inflation",
    MacroRegime.GROWTH_FALLING_INFLATION_FALLING: "Deflationary: falling growth and inflation",
}

_RISKS = {
    MacroRegime.GROWTH_INFLATION_RISING: ['Central bank tightening', 'Inflation overshoot'],
    MacroRegime.GROWTH_RISING_INFLATION_FALLING: ['Inflation acceleration', 'Asset bubbles'],
    MacroRegime.GROWTH_FALLING_INFLATION_RISING: ['Stagflation', 'Policy error', 'Recession'],
    MacroRegime.GROWTH_FALLING_INFLATION_FALLING: ['Deflation', 'Recession', 'Liquidity trap'],
}


@dataclass
class RegimeAssessment:
    """Quadrant pick with a confidence in [50, 95]."""
    regime: MacroRegime
    confidence: int
    growth_strength: float
    inflation_strength: float
    risks: List[str] = field(default_factory=list)

    @property
    def allocation(self) -> Dict[str, Stance]:
        return self.regime.allocation

    def to_dict(self) -> dict:
        return {
            'regime': self.regime.value,
            'description': self.regime.description,
            'confidence': self.confidence,
            'growth_strength': self.growth_strength,
            'inflation_strength': self.inflation_strength,
            'allocation': {k: v.value for k, v in self.allocation.items()},
            'risks': list(self.risks)
        }


class RegimeAdjuster:
    """Applies regime stance multipliers to portfolio weights."""

    def __init__(self, config=None):
        from ..config import RegimeConfig
        self.config = config or RegimeConfig()

    def multiplier(self, stance: Stance) -> float:
        return {
            Stance.OVERWEIGHT: self.config.overweight_multiplier,
            Stance.NEUTRAL: self.config.neutral_multiplier,
            Stance.UNDERWEIGHT: self.config.underweight_multiplier,
        }[stance]

    def multiplier_table(self, regime: MacroRegime) -> Dict[str, float]:
        return {cls: self.multiplier(stance) for cls, stance in regime.allocation.items()}

    def class_of(self, symbol: str) -> str:
        return self.config.asset_classes.get(symbol.upper(), self.config.default_asset_class)

    def adjust(self, weights: Dict[str, float],
               regime: Union[MacroRegime, RegimeAssessment]) -> Dict[str, float]:
        """
        adjusted[s] = weights[s] * multiplier[class_of(s)], renormalized.

        Asset classes absent from the regime table keep a multiplier of 1.0.
        """
        if isinstance(regime, RegimeAssessment):
            regime = regime.regime
        if not weights:
            raise InvalidInputError("No weights to adjust")
        if any(w < 0 for w in weights.values()):
            raise InvalidInputError("Regime adjustment expects long-only weights")

        table = self.multiplier_table(regime)
        tilted = {s: w * table.get(self.class_of(s), 1.0) for s, w in weights.items()}
        total = sum(tilted.values())
        if total <= 0:
            raise InvalidInputError("Weights sum to zero; nothing to renormalize")
        adjusted = {s: w / total for s, w in tilted.items()}

        check = sum(adjusted.values())
        if abs(check - 1) >= 1e-6:
            logger.critical(f"Regime-adjusted weights sum to {check:.10f}")
            raise InvariantViolationError(f"Regime-adjusted weights sum to {check:.10f}, expected 1")

        logger.info(f"Adjusted weights for {regime.value}: "
                    f"{', '.join(f'{s}={w:.3f}' for s, w in adjusted.items())}")
        return adjusted

    def assess_regime(self, growth_accelerating, inflation_rising: Optional[bool] = None,
                      growth_strength: float = 0.0, inflation_strength: float = 0.0) -> RegimeAssessment:
        """
        Pick the quadrant from growth / inflation directions.

        Accepts either the four readings or a RegimeSnapshot as the first
        argument.
        """
        if hasattr(growth_accelerating, 'growth_accelerating'):
            snapshot = growth_accelerating
            growth_accelerating = snapshot.growth_accelerating
            inflation_rising = snapshot.inflation_rising
            growth_strength = snapshot.growth_strength
            inflation_strength = snapshot.inflation_strength
        if inflation_rising is None:
            raise InvalidInputError("inflation_rising is required")

        regime = MacroRegime.from_directions(bool(growth_accelerating), bool(inflation_rising))
        avg_strength = (growth_strength + inflation_strength) / 2
        confidence = int(round(max(50, min(95, 50 + avg_strength * 0.4))))
        logger.info(f"Regime: {regime.value} ({confidence}% confidence)")
        return RegimeAssessment(
            regime=regime,
            confidence=confidence,
            growth_strength=growth_strength,
            inflation_strength=inflation_strength,
            risks=list(_RISKS[regime])
        )
