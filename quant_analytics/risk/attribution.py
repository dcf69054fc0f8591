"""
Performance Attribution
=======================
Splits a portfolio's period return into per-asset contributions
(weight * asset return) and rolls them up by sector, asset class and
geography.
"""

from dataclasses import dataclass
from typing import Dict, Optional
import logging

from ..errors import InvalidInputError

logger = logging.getLogger(__name__)

UNCLASSIFIED = "unclassified"
DIMENSIONS = ('sector', 'asset_class', 'geography')


@dataclass
class AttributionResult:
    """Contribution breakdown for one period."""
    contributions: Dict[str, float]
    by_sector: Dict[str, float]
    by_asset_class: Dict[str, float]
    by_geography: Dict[str, float]
    total_contribution: float
    portfolio_return: float
    residual: float
    reconciled: bool

    def to_dict(self) -> dict:
        return {
            'contributions': dict(self.contributions),
            'by_sector': dict(self.by_sector),
            'by_asset_class': dict(self.by_asset_class),
            'by_geography': dict(self.by_geography),
            'total_contribution': self.total_contribution,
            'portfolio_return': self.portfolio_return,
            'residual': self.residual,
            'reconciled': self.reconciled
        }


class PerformanceAttribution:
    """
    Contribution analysis.

    When the weights sum to one, the contributions must add up to the
    portfolio return within the configured tolerance; a mismatch is
    reported on the result and logged.
    """

    def __init__(self, config=None):
        from ..config import RiskConfig
        self.config = config or RiskConfig()

    def attribute(self, weights: Dict[str, float], asset_returns: Dict[str, float],
                  classifications: Optional[Dict[str, object]] = None,
                  portfolio_return: Optional[float] = None,
                  weight_tolerance: float = 1e-6) -> AttributionResult:
        """
        Args:
            weights: symbol -> portfolio weight
            asset_returns: symbol -> period return
            classifications: symbol -> AssetClassification (or dict with
                sector / asset_class / geography)
            portfolio_return: observed portfolio return; defaults to the sum
                of contributions
        """
        missing = [s for s in weights if s not in asset_returns]
        if missing:
            raise InvalidInputError(f"No period return for {missing}")
        classifications = classifications or {}

        contributions = {s: w * asset_returns[s] for s, w in weights.items()}
        groups: Dict[str, Dict[str, float]] = {d: {} for d in DIMENSIONS}
        for symbol, contribution in contributions.items():
            info = classifications.get(symbol)
            for dimension in DIMENSIONS:
                if isinstance(info, dict):
                    key = info.get(dimension)
                else:
                    key = getattr(info, dimension, None)
                key = key or UNCLASSIFIED
                groups[dimension][key] = groups[dimension].get(key, 0.0) + contribution

        total = sum(contributions.values())
        observed = total if portfolio_return is None else portfolio_return
        residual = observed - total

        fully_invested = abs(sum(weights.values()) - 1) <= weight_tolerance
        reconciled = abs(residual) <= self.config.attribution_tolerance
        if fully_invested and not reconciled:
            logger.warning(f"Attribution does not reconcile: contributions {total:.6f} "
                           f"vs portfolio return {observed:.6f} (residual {residual:.2e})")

        return AttributionResult(
            contributions=contributions,
            by_sector=groups['sector'],
            by_asset_class=groups['asset_class'],
            by_geography=groups['geography'],
            total_contribution=total,
            portfolio_return=observed,
            residual=residual,
            reconciled=reconciled
        )
