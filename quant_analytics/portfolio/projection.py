"""
Performance Projection
======================
Monte Carlo projection of a weighted portfolio over multi-year horizons.

Each iteration draws one annual return per year from a normal distribution
with the portfolio's expected return and volatility, compounds it, and
floors the growth factor at zero so a path can be wiped out but never go
negative. Every horizon is read off the same simulated paths.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from .models import CovarianceMatrix
from ..errors import InvalidInputError

logger = logging.getLogger(__name__)

# Identical paths still leave float noise in np.std
VOLATILITY_FLOOR = 1e-12


@dataclass
class HorizonProjection:
    """Distribution of terminal values after one horizon."""
    years: int
    expected_value: float
    median_value: float
    worst_case: float  # 5th percentile
    best_case: float  # 95th percentile
    probability_of_loss: float
    probability_of_doubling: float
    expected_annual_return: float
    annual_return_volatility: float
    sharpe: Optional[float]
    average_max_drawdown: float

    def to_dict(self) -> dict:
        return {
            'years': self.years,
            'expected_value': self.expected_value,
            'median_value': self.median_value,
            'worst_case': self.worst_case,
            'best_case': self.best_case,
            'probability_of_loss': self.probability_of_loss,
            'probability_of_doubling': self.probability_of_doubling,
            'expected_annual_return': self.expected_annual_return,
            'annual_return_volatility': self.annual_return_volatility,
            'sharpe': self.sharpe,
            'average_max_drawdown': self.average_max_drawdown
        }


@dataclass
class PerformanceProjection:
    """Projection of one allocation across every configured horizon."""
    weights: Dict[str, float]
    portfolio_return: float
    portfolio_volatility: float
    initial_value: float
    iterations: int
    horizons: Dict[int, HorizonProjection] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'weights': dict(self.weights),
            'portfolio_return': self.portfolio_return,
            'portfolio_volatility': self.portfolio_volatility,
            'initial_value': self.initial_value,
            'iterations': self.iterations,
            'methodology': f"Monte Carlo simulation ({self.iterations} iterations)",
            'horizons': {f"{years}y": h.to_dict() for years, h in self.horizons.items()}
        }


class PerformanceProjector:
    """Simulates compounded annual returns for a fixed allocation."""

    def __init__(self, config=None):
        from ..config import ProjectionConfig
        self.config = config or ProjectionConfig()

        logger.info(f"PerformanceProjector initialized ({self.config.iterations} iterations)")

    def project(self, weights: Dict[str, float], expected_returns: Dict[str, float],
                covariance: CovarianceMatrix) -> PerformanceProjection:
        """
        Project ``weights`` forward.

        ``expected_returns`` and ``covariance`` are annualized. Every weighted
        symbol needs both an expected return and a covariance row.
        """
        cfg = self.config
        if cfg.iterations < 1:
            raise InvalidInputError(f"Need at least one iteration, got {cfg.iterations}")
        horizons = sorted(set(cfg.horizons_years))
        if not horizons or horizons[0] < 1:
            raise InvalidInputError(f"Horizons must be whole years >= 1, got {cfg.horizons_years}")
        if cfg.initial_value <= 0:
            raise InvalidInputError(f"Initial value must be positive, got {cfg.initial_value}")
        if not weights:
            raise InvalidInputError("No weights to project")

        symbols = list(weights)
        missing = [s for s in symbols if s not in expected_returns or s not in covariance.symbols]
        if missing:
            raise InvalidInputError(f"No expected return or covariance for {missing}")

        w = np.array([weights[s] for s in symbols], dtype=float)
        mu = np.array([expected_returns[s] for s in symbols], dtype=float)
        sigma = covariance.subset(symbols).matrix
        portfolio_return = float(w @ mu)
        portfolio_volatility = float(np.sqrt(max(float(w @ sigma @ w), 0.0)))

        rng = np.random.default_rng(cfg.seed)
        draws = rng.normal(portfolio_return, portfolio_volatility, size=(cfg.iterations, horizons[-1]))
        growth = np.cumprod(np.maximum(1.0 + draws, 0.0), axis=1)
        paths = cfg.initial_value * np.hstack([np.ones((cfg.iterations, 1)), growth])

        result = PerformanceProjection(
            weights=dict(weights),
            portfolio_return=portfolio_return,
            portfolio_volatility=portfolio_volatility,
            initial_value=cfg.initial_value,
            iterations=cfg.iterations
        )
        for years in horizons:
            result.horizons[years] = self._summarize(paths[:, :years + 1], years)

        logger.info(f"Projected {len(symbols)} assets over {horizons} years: "
                    f"return={portfolio_return:.2%}, volatility={portfolio_volatility:.2%}")
        return result

    def _summarize(self, paths: np.ndarray, years: int) -> HorizonProjection:
        initial = self.config.initial_value
        terminal = paths[:, -1]
        annual = (terminal / initial) ** (1.0 / years) - 1.0
        mean_annual = float(np.mean(annual))
        vol_annual = float(np.std(annual))

        peaks = np.maximum.accumulate(paths, axis=1)
        drawdowns = 1.0 - paths / peaks

        return HorizonProjection(
            years=years,
            expected_value=float(np.mean(terminal)),
            median_value=float(np.median(terminal)),
            worst_case=float(np.percentile(terminal, 5)),
            best_case=float(np.percentile(terminal, 95)),
            probability_of_loss=float(np.mean(terminal < initial)),
            probability_of_doubling=float(np.mean(terminal >= 2 * initial)),
            expected_annual_return=mean_annual,
            annual_return_volatility=vol_annual,
            sharpe=(mean_annual - self.config.risk_free_rate) / vol_annual if vol_annual > VOLATILITY_FLOOR else None,
            average_max_drawdown=float(np.mean(drawdowns.max(axis=1)))
        )

    def project_many(self, allocations: Dict[str, Dict[str, float]], expected_returns: Dict[str, float],
                     covariance: CovarianceMatrix) -> Dict[str, PerformanceProjection]:
        """Project several named allocations; a fixed seed gives each one the same draws."""
        return {name: self.project(weights, expected_returns, covariance)
                for name, weights in allocations.items()}


def horizon_table(projection: PerformanceProjection) -> List[dict]:
    """Flat rows, one per horizon, for printing."""
    return [
        {'years': years, 'median': h.median_value, 'p5': h.worst_case, 'p95': h.best_case,
         'loss_probability': h.probability_of_loss}
        for years, h in projection.horizons.items()
    ]
