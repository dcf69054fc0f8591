"""
Portfolio Optimizer
===================
Heuristic weight allocation: mean-variance tilt, risk parity and minimum
variance. These are closed-form approximations, not quadratic programs.

Every allocation is checked before it is returned: weights must sum to 1
within 1e-6 or InvariantViolationError is raised.

Known limitation of mean_variance: clipping to [min_weight, max_weight]
and then renormalizing can push weights back outside the bounds. By
default the result keeps those weights and lists them in
``bound_violations``; with ``OptimizerConfig.enforce_bounds`` the weights are
water-filled into the bounds instead (one scalar shift, then clipping).
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from .models import CovarianceMatrix
from ..errors import InvalidInputError, InvariantViolationError

logger = logging.getLogger(__name__)


@dataclass
class OptimizationResult:
    """Weights produced by one optimizer run."""
    method: str
    weights: Dict[str, float]
    expected_return: Optional[float]
    volatility: float
    sharpe: Optional[float]
    bound_violations: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'method': self.method,
            'weights': dict(self.weights),
            'expected_return': self.expected_return,
            'volatility': self.volatility,
            'sharpe': self.sharpe,
            'bound_violations': dict(self.bound_violations)
        }


@dataclass
class RebalanceTrade:
    """One trade needed to move toward the target weights."""
    symbol: str
    action: str  # 'BUY' or 'SELL'
    current_weight: float
    target_weight: float
    drift: float
    amount: float
    priority: str  # 'HIGH' or 'MEDIUM'

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'action': self.action,
            'current_weight': self.current_weight,
            'target_weight': self.target_weight,
            'drift': self.drift,
            'amount': self.amount,
            'priority': self.priority
        }


@dataclass
class RebalancePlan:
    """Trades and estimated costs of a rebalance."""
    trades: List[RebalanceTrade]
    estimated_cost: float
    cost_pct: float

    @property
    def needed(self) -> bool:
        return bool(self.trades)

    def to_dict(self) -> dict:
        return {
            'needed': self.needed,
            'total_trades': len(self.trades),
            'trades': [t.to_dict() for t in self.trades],
            'estimated_cost': self.estimated_cost,
            'cost_pct': self.cost_pct
        }


class PortfolioOptimizer:
    """Allocates weights from expected returns and a covariance matrix."""

    METHODS = ('mean_variance', 'risk_parity', 'minimum_variance')

    def __init__(self, config=None):
        from ..config import OptimizerConfig
        self.config = config or OptimizerConfig()

    def optimize(self, method: str, covariance: CovarianceMatrix,
                 expected_returns: Optional[Dict[str, float]] = None) -> OptimizationResult:
        """Dispatch by method name."""
        if method == 'mean_variance':
            if not expected_returns:
                raise InvalidInputError("mean_variance needs expected returns")
            return self.mean_variance(expected_returns, covariance)
        if method == 'risk_parity':
            return self.risk_parity(covariance, expected_returns)
        if method == 'minimum_variance':
            return self.minimum_variance(covariance, expected_returns)
        raise InvalidInputError(f"Unknown optimization method {method!r}; expected one of {self.METHODS}")

    # =========================================================================
    # METHODS
    # =========================================================================

    def mean_variance(self, expected_returns: Dict[str, float], covariance: CovarianceMatrix,
                      min_weight: Optional[float] = None,
                      max_weight: Optional[float] = None) -> OptimizationResult:
        """
        Equal-weight start tilted by each asset's return/volatility score.

        raw = (1/n) * (1 + er / vol), clipped to the bounds and renormalized.
        A zero-volatility asset gets a score of 0.
        """
        lo = self.config.min_weight if min_weight is None else min_weight
        hi = self.config.max_weight if max_weight is None else max_weight
        symbols = self._symbols(expected_returns, covariance)
        if lo > hi:
            raise InvalidInputError(f"min_weight {lo} exceeds max_weight {hi}")

        n = len(symbols)
        base = 1.0 / n
        raw = {}
        for s in symbols:
            vol = np.sqrt(covariance.variance(s))
            score = expected_returns[s] / vol if vol > 0 else 0.0
            raw[s] = base * (1 + score)

        if self.config.enforce_bounds:
            if n * lo > 1 + 1e-12 or n * hi < 1 - 1e-12:
                raise InvalidInputError(f"Bounds [{lo}, {hi}] are infeasible for {n} assets")
            weights = self._water_fill(raw, lo, hi)
        else:
            clipped = {s: min(max(w, lo), hi) for s, w in raw.items()}
            total = sum(clipped.values())
            if total <= 0:
                logger.warning("All mean-variance weights clipped to zero; falling back to equal weight")
                weights = {s: base for s in symbols}
            else:
                weights = {s: w / total for s, w in clipped.items()}

        violations = {s: w for s, w in weights.items() if w < lo - 1e-9 or w > hi + 1e-9}
        if violations:
            logger.warning(f"Mean-variance weights outside [{lo}, {hi}] after renormalization: "
                           f"{', '.join(f'{s}={w:.4f}' for s, w in violations.items())}")
        return self._finalize('mean_variance', weights, covariance, expected_returns, violations)

    def risk_parity(self, covariance: CovarianceMatrix,
                    expected_returns: Optional[Dict[str, float]] = None) -> OptimizationResult:
        """Weights proportional to 1 / volatility."""
        vols = {s: np.sqrt(v) for s, v in covariance.variances().items()}
        return self._finalize('risk_parity', self._inverse_weights(vols), covariance, expected_returns)

    def minimum_variance(self, covariance: CovarianceMatrix,
                         expected_returns: Optional[Dict[str, float]] = None) -> OptimizationResult:
        """Weights proportional to 1 / variance (ignores covariances)."""
        return self._finalize('minimum_variance', self._inverse_weights(covariance.variances()),
                              covariance, expected_returns)

    # =========================================================================
    # REBALANCING
    # =========================================================================

    def rebalance(self, current: Dict[str, float], target: Dict[str, float],
                  portfolio_value: float = 1.0) -> RebalancePlan:
        """Trades for every holding whose drift exceeds the threshold."""
        cfg = self.config
        trades = []
        for symbol in list(dict.fromkeys(list(target) + list(current))):
            now = current.get(symbol, 0.0)
            goal = target.get(symbol, 0.0)
            drift = goal - now
            if abs(drift) <= cfg.rebalance_threshold:
                continue
            trades.append(RebalanceTrade(
                symbol=symbol,
                action='BUY' if drift > 0 else 'SELL',
                current_weight=now,
                target_weight=goal,
                drift=drift,
                amount=abs(drift) * portfolio_value,
                priority='HIGH' if abs(drift) > cfg.high_priority_drift else 'MEDIUM'
            ))
        cost = sum(t.amount for t in trades) * cfg.transaction_cost_pct
        return RebalancePlan(
            trades=trades,
            estimated_cost=cost,
            cost_pct=cost / portfolio_value * 100 if portfolio_value else 0.0
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _symbols(expected_returns: Dict[str, float], covariance: CovarianceMatrix) -> List[str]:
        if not expected_returns:
            raise InvalidInputError("No assets to optimize")
        missing = [s for s in expected_returns if s not in covariance.symbols]
        if missing:
            raise InvalidInputError(f"Covariance lacks {missing}")
        return list(expected_returns)

    @staticmethod
    def _inverse_weights(values: Dict[str, float]) -> Dict[str, float]:
        """
        Weights proportional to 1 / value.

        Zero-valued assets are the limit of the inverse and split the
        whole allocation equally between them.
        """
        if not values:
            raise InvalidInputError("No assets to optimize")
        zeros = [s for s, v in values.items() if v == 0]
        if zeros:
            logger.warning(f"Zero-risk assets {zeros} take the full allocation")
            return {s: (1.0 / len(zeros) if s in zeros else 0.0) for s in values}
        inverse = {s: 1.0 / v for s, v in values.items()}
        total = sum(inverse.values())
        return {s: w / total for s, w in inverse.items()}

    @staticmethod
    def _water_fill(raw: Dict[str, float], lo: float, hi: float) -> Dict[str, float]:
        """
        Proportional weights shifted by one scalar and clipped to [lo, hi].

        The shift is solved exactly: sum(clip(w + shift)) is piecewise linear
        and non-decreasing in the shift, from n*lo to n*hi.
        """
        symbols = list(raw)
        positive = np.array([max(raw[s], 0.0) for s in symbols])
        total = positive.sum()
        base = positive / total if total > 0 else np.full(len(symbols), 1.0 / len(symbols))

        def level(shift: float) -> float:
            return float(np.clip(base + shift, lo, hi).sum())

        points = np.sort(np.concatenate([lo - base, hi - base]))
        levels = np.array([level(p) for p in points])
        idx = min(int(np.searchsorted(levels, 1.0)), len(points) - 1)
        if idx == 0 or levels[idx] == levels[idx - 1]:
            shift = points[idx]
        else:
            left, right = points[idx - 1], points[idx]
            shift = left + (1.0 - levels[idx - 1]) * (right - left) / (levels[idx] - levels[idx - 1])
        weights = np.clip(base + shift, lo, hi)
        return {s: float(w) for s, w in zip(symbols, weights)}

    def _finalize(self, method: str, weights: Dict[str, float], covariance: CovarianceMatrix,
                  expected_returns: Optional[Dict[str, float]],
                  violations: Optional[Dict[str, float]] = None) -> OptimizationResult:
        total = sum(weights.values())
        if abs(total - 1) >= self.config.weight_tolerance:
            logger.critical(f"{method} produced weights summing to {total:.10f}")
            raise InvariantViolationError(f"{method} weights sum to {total:.10f}, expected 1",
                                          details={'weights': dict(weights)})

        sub = covariance.subset(list(weights))
        volatility = float(np.sqrt(max(sub.portfolio_variance(weights), 0.0)))
        expected = None
        sharpe = None
        if expected_returns:
            expected = float(sum(w * expected_returns.get(s, 0.0) for s, w in weights.items()))
            if volatility > 0:
                sharpe = (expected - self.config.risk_free_rate) / volatility

        logger.info(f"{method}: {', '.join(f'{s}={w:.3f}' for s, w in weights.items())}")
        return OptimizationResult(method, dict(weights), expected, volatility, sharpe, dict(violations or {}))
