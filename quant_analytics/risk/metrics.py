"""
Risk Metrics Module
===================
Return, risk and benchmark-relative statistics over value series.

Conventions:
- returns are simple period returns of the value series
- annualization uses a fixed trading-day factor (252 by default)
- annualized return is the arithmetic mean return times the factor
- moments (volatility, skew, kurtosis, beta) use population statistics
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union
from enum import Enum
import math
import logging

from ..errors import DegenerateInputError, InsufficientDataError, InvalidInputError

logger = logging.getLogger(__name__)


class _Unbounded:
    """Sentinel for a ratio whose denominator is zero with a positive numerator."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNBOUNDED"

    def __reduce__(self):
        return (_Unbounded, ())


UNBOUNDED = _Unbounded()

Ratio = Union[float, _Unbounded]

# One-tailed normal quantiles
Z_SCORES = {0.90: 1.2816, 0.95: 1.6449, 0.99: 2.3263}


class RiskLevel(Enum):
    """Risk buckets on a 0-100 score."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"
    EXTREME = "extreme"

    @classmethod
    def from_score(cls, score: float) -> 'RiskLevel':
        if score < 20:
            return cls.LOW
        if score < 40:
            return cls.MODERATE
        if score < 60:
            return cls.HIGH
        if score < 80:
            return cls.VERY_HIGH
        return cls.EXTREME


@dataclass(frozen=True)
class Drawdown:
    """Largest peak-to-trough decline."""
    value: float                     # fraction of the peak, 0 to 1
    peak_index: int
    trough_index: int
    recovery_index: Optional[int] = None

    @property
    def duration(self) -> int:
        """Periods from peak to recovery (or to trough if not recovered)."""
        end = self.recovery_index if self.recovery_index is not None else self.trough_index
        return end - self.peak_index

    def to_dict(self) -> dict:
        return {
            'max_drawdown': self.value,
            'peak_index': self.peak_index,
            'trough_index': self.trough_index,
            'recovery_index': self.recovery_index,
            'duration': self.duration
        }


@dataclass
class BenchmarkStats:
    """Benchmark-relative statistics."""
    beta: float
    alpha: float
    tracking_error: float
    information_ratio: Optional[float]
    treynor: Optional[float]
    correlation: float
    up_capture: Optional[float]
    down_capture: Optional[float]
    observations: int

    def to_dict(self) -> dict:
        return {
            'beta': self.beta,
            'alpha': self.alpha,
            'tracking_error': self.tracking_error,
            'information_ratio': self.information_ratio,
            'treynor': self.treynor,
            'correlation': self.correlation,
            'up_capture': self.up_capture,
            'down_capture': self.down_capture,
            'observations': self.observations
        }


@dataclass
class RiskReport:
    """Risk and performance summary of one value series."""
    total_return: float
    annualized_return: float
    volatility: float
    sharpe: float
    sortino: Ratio
    calmar: Optional[float]
    drawdown: Drawdown
    var: float
    cvar: float
    parametric_var: float
    skewness: float
    kurtosis: float
    observations: int
    var_confidence: float = 0.95
    benchmark: Optional[BenchmarkStats] = None

    @property
    def max_drawdown(self) -> float:
        return self.drawdown.value

    @property
    def risk_score(self) -> float:
        """Annualized volatility in percent, capped at 100."""
        return float(min(100.0, max(0.0, self.volatility * 100)))

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.from_score(self.risk_score)

    def to_dict(self) -> dict:
        return {
            'total_return': self.total_return,
            'annualized_return': self.annualized_return,
            'volatility': self.volatility,
            'sharpe': self.sharpe,
            'sortino': 'unbounded' if self.sortino is UNBOUNDED else self.sortino,
            'calmar': self.calmar,
            'drawdown': self.drawdown.to_dict(),
            'var': self.var,
            'cvar': self.cvar,
            'parametric_var': self.parametric_var,
            'var_confidence': self.var_confidence,
            'skewness': self.skewness,
            'kurtosis': self.kurtosis,
            'observations': self.observations,
            'risk_level': self.risk_level.value,
            'benchmark': self.benchmark.to_dict() if self.benchmark else None
        }


@dataclass
class CorrelationRisk:
    """Concentration of co-movement across holdings."""
    matrix: pd.DataFrame
    average_correlation: float
    max_correlation: float
    risk_score: float
    diversification_benefit: float
    high_pairs: List[tuple] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'average_correlation': self.average_correlation,
            'max_correlation': self.max_correlation,
            'risk_score': self.risk_score,
            'diversification_benefit': self.diversification_benefit,
            'high_pairs': [list(p) for p in self.high_pairs]
        }


@dataclass
class StopLevels:
    """Volatility-scaled stop loss and profit target."""
    entry: float
    stop_loss: float
    profit_target: float
    risk_amount: float
    reward_amount: float
    reward_risk_ratio: float

    def to_dict(self) -> dict:
        return {
            'entry': self.entry,
            'stop_loss': self.stop_loss,
            'profit_target': self.profit_target,
            'risk_amount': self.risk_amount,
            'reward_amount': self.reward_amount,
            'reward_risk_ratio': self.reward_risk_ratio
        }


@dataclass
class PositionSize:
    """Units to trade so a stopped-out position loses a fixed share of capital."""
    units: float
    position_value: float
    risk_amount: float
    risk_pct: float
    volatility_adjustment: float
    stop_loss: float
    capped: bool

    def to_dict(self) -> dict:
        return {
            'units': self.units,
            'position_value': self.position_value,
            'risk_amount': self.risk_amount,
            'risk_pct': self.risk_pct,
            'volatility_adjustment': self.volatility_adjustment,
            'stop_loss': self.stop_loss,
            'capped': self.capped
        }


def _array(values) -> np.ndarray:
    return np.asarray(values, dtype=float)


def _pearson(a: np.ndarray, b: np.ndarray) -> float:
    """Pearson correlation; 0 when either side is constant."""
    sa, sb = a.std(), b.std()
    if sa == 0 or sb == 0:
        return 0.0
    return float(np.mean((a - a.mean()) * (b - b.mean())) / (sa * sb))


class RiskMetricsEngine:
    """
    Computes risk/performance metrics for value series and portfolios.

    All methods are pure; the engine only holds configuration.
    """

    def __init__(self, config=None):
        from ..config import RiskConfig
        self.config = config or RiskConfig()

    # =========================================================================
    # RETURNS
    # =========================================================================

    @staticmethod
    def returns_from_values(values: Sequence[float]) -> np.ndarray:
        values = _array(values)
        if len(values) < 2:
            raise InsufficientDataError("Need at least two values for returns", required=2, available=len(values))
        if np.any(values[:-1] == 0):
            raise DegenerateInputError("Zero value in series; returns undefined")
        return values[1:] / values[:-1] - 1

    @staticmethod
    def total_return(values: Sequence[float]) -> float:
        values = _array(values)
        if len(values) < 2:
            raise InsufficientDataError("Need at least two values", required=2, available=len(values))
        if values[0] == 0:
            raise DegenerateInputError("First value is zero; total return undefined")
        return float(values[-1] / values[0] - 1)

    def annualized_return(self, returns: Sequence[float]) -> float:
        returns = self._require_returns(returns)
        return float(returns.mean() * self.config.trading_days)

    def volatility(self, returns: Sequence[float]) -> float:
        returns = self._require_returns(returns)
        return float(returns.std() * np.sqrt(self.config.trading_days))

    # =========================================================================
    # TAIL RISK
    # =========================================================================

    def _cutoff(self, returns: np.ndarray, confidence: float) -> int:
        if not 0 < confidence <= 1:
            raise InvalidInputError(f"Confidence must be in (0, 1], got {confidence}")
        index = int(math.floor((1 - confidence) * len(returns)))
        return min(max(index, 0), len(returns) - 1)

    def value_at_risk(self, returns: Sequence[float], confidence: Optional[float] = None) -> float:
        """
        Historical VaR as a positive loss fraction.

        The cutoff index floor((1 - c) * n) is clamped to [0, n - 1], so
        c = 1.0 returns the worst observed loss.
        """
        confidence = self.config.var_confidence if confidence is None else confidence
        returns = np.sort(self._require_returns(returns))
        return float(-returns[self._cutoff(returns, confidence)])

    def conditional_var(self, returns: Sequence[float], confidence: Optional[float] = None) -> float:
        """Expected shortfall: mean loss of the returns below the VaR cutoff (0 if none)."""
        confidence = self.config.var_confidence if confidence is None else confidence
        returns = np.sort(self._require_returns(returns))
        tail = returns[:self._cutoff(returns, confidence)]
        if len(tail) == 0:
            return 0.0
        return float(-tail.mean())

    def parametric_var(self, returns: Sequence[float], confidence: Optional[float] = None) -> float:
        """Normal-approximation VaR: z * std - mean."""
        confidence = self.config.var_confidence if confidence is None else confidence
        returns = self._require_returns(returns)
        z = Z_SCORES.get(round(confidence, 2), Z_SCORES[0.95])
        return float(z * returns.std() - returns.mean())

    # =========================================================================
    # RISK-ADJUSTED RATIOS
    # =========================================================================

    def sharpe_ratio(self, returns: Sequence[float]) -> float:
        """(annualized return - risk free) / volatility; 0 when volatility is 0."""
        vol = self.volatility(returns)
        if vol == 0:
            return 0.0
        return float((self.annualized_return(returns) - self.config.risk_free_rate) / vol)

    def sortino_ratio(self, returns: Sequence[float], target: Optional[float] = None) -> Ratio:
        """
        Excess return over ``target`` (annualized) per unit of downside deviation.

        With no return below the daily target the ratio is UNBOUNDED when
        the excess is positive and 0.0 otherwise.
        """
        returns = self._require_returns(returns)
        target = self.config.sortino_target if target is None else target
        days = self.config.trading_days
        daily_target = target / days

        shortfall = np.minimum(0.0, returns - daily_target)
        excess = self.annualized_return(returns) - target
        if not np.any(shortfall < 0):
            return UNBOUNDED if excess > 0 else 0.0
        downside = np.sqrt(np.sum(shortfall ** 2) / len(returns) * days)
        return float(excess / downside)

    def max_drawdown(self, values: Sequence[float]) -> Drawdown:
        """Single pass with a running peak."""
        values = _array(values)
        if len(values) == 0:
            raise InsufficientDataError("Empty value series", required=1, available=0)

        peak_idx = 0
        best = Drawdown(0.0, 0, 0)
        for i, value in enumerate(values):
            if value > values[peak_idx]:
                peak_idx = i
            peak = values[peak_idx]
            drawdown = (peak - value) / peak if peak > 0 else 0.0
            if drawdown > best.value:
                best = Drawdown(float(drawdown), peak_idx, i)

        if best.value > 0:
            peak_value = values[best.peak_index]
            recovered = np.nonzero(values[best.trough_index + 1:] >= peak_value)[0]
            if len(recovered):
                best = Drawdown(best.value, best.peak_index, best.trough_index,
                                int(best.trough_index + 1 + recovered[0]))
        return best

    def calmar_ratio(self, values: Sequence[float]) -> Optional[float]:
        """Annualized return / max drawdown; None when there is no drawdown."""
        drawdown = self.max_drawdown(values).value
        if drawdown == 0:
            return None
        return float(self.annualized_return(self.returns_from_values(values)) / drawdown)

    # =========================================================================
    # MOMENTS
    # =========================================================================

    def skewness(self, returns: Sequence[float]) -> float:
        returns = self._require_returns(returns)
        std = returns.std()
        if std == 0:
            return 0.0
        return float(np.mean(((returns - returns.mean()) / std) ** 3))

    def kurtosis(self, returns: Sequence[float]) -> float:
        """Excess kurtosis."""
        returns = self._require_returns(returns)
        std = returns.std()
        if std == 0:
            return 0.0
        return float(np.mean(((returns - returns.mean()) / std) ** 4) - 3)

    # =========================================================================
    # BENCHMARK
    # =========================================================================

    def benchmark_stats(self, returns: Sequence[float], benchmark_returns: Sequence[float]) -> BenchmarkStats:
        """Statistics against a benchmark over their common (tail-aligned) span."""
        returns = _array(returns)
        benchmark_returns = _array(benchmark_returns)
        n = min(len(returns), len(benchmark_returns))
        if n < 2:
            raise InsufficientDataError("Need two overlapping returns for benchmark stats",
                                        required=2, available=n)
        port, bench = returns[-n:], benchmark_returns[-n:]
        days = self.config.trading_days
        rf = self.config.risk_free_rate

        bench_var = bench.var()
        beta = float(np.mean((port - port.mean()) * (bench - bench.mean())) / bench_var) if bench_var > 0 else 0.0
        ann_port = port.mean() * days
        ann_bench = bench.mean() * days
        alpha = float(ann_port - (rf + beta * (ann_bench - rf)))
        tracking_error = float((port - bench).std() * np.sqrt(days))

        def _capture(mask: np.ndarray) -> Optional[float]:
            if not mask.any():
                return None
            bench_mean = bench[mask].mean()
            if bench_mean == 0:
                return None
            return float(port[mask].mean() / bench_mean)

        return BenchmarkStats(
            beta=beta,
            alpha=alpha,
            tracking_error=tracking_error,
            information_ratio=float(alpha / tracking_error) if tracking_error > 0 else None,
            treynor=float((ann_port - rf) / beta) if beta != 0 else None,
            correlation=_pearson(port, bench),
            up_capture=_capture(bench > 0),
            down_capture=_capture(bench < 0),
            observations=n
        )

    # =========================================================================
    # REPORTS
    # =========================================================================

    def report(self, values: Sequence[float], benchmark_values: Optional[Sequence[float]] = None,
               confidence: Optional[float] = None) -> RiskReport:
        """Full risk report for a value (equity or price) series."""
        values = _array(values)
        confidence = self.config.var_confidence if confidence is None else confidence
        returns = self.returns_from_values(values)

        benchmark = None
        if benchmark_values is not None:
            benchmark = self.benchmark_stats(returns, self.returns_from_values(benchmark_values))

        drawdown = self.max_drawdown(values)
        annualized = self.annualized_return(returns)
        report = RiskReport(
            total_return=self.total_return(values),
            annualized_return=annualized,
            volatility=self.volatility(returns),
            sharpe=self.sharpe_ratio(returns),
            sortino=self.sortino_ratio(returns),
            calmar=float(annualized / drawdown.value) if drawdown.value > 0 else None,
            drawdown=drawdown,
            var=self.value_at_risk(returns, confidence),
            cvar=self.conditional_var(returns, confidence),
            parametric_var=self.parametric_var(returns, confidence),
            skewness=self.skewness(returns),
            kurtosis=self.kurtosis(returns),
            observations=len(returns),
            var_confidence=confidence,
            benchmark=benchmark
        )
        logger.debug(f"Risk report: vol={report.volatility:.2%}, maxDD={drawdown.value:.2%}, "
                     f"VaR={report.var:.2%}")
        return report

    def portfolio_values(self, weights: Dict[str, float], price_map: Dict[str, Sequence[float]],
                         initial_value: float = 1.0) -> np.ndarray:
        """
        Value path of a fixed-weight portfolio rebalanced every period.

        Price series are tail-aligned to the shortest one.
        """
        missing = [s for s in weights if s not in price_map]
        if missing:
            raise InvalidInputError(f"No prices for {missing}")
        n = min(len(price_map[s]) for s in weights)
        if n < 2:
            raise InsufficientDataError("Need two aligned prices per asset", required=2, available=n)

        period_returns = np.zeros(n - 1)
        for symbol, weight in weights.items():
            period_returns += weight * self.returns_from_values(_array(price_map[symbol])[-n:])
        return initial_value * np.concatenate([[1.0], np.cumprod(1 + period_returns)])

    def portfolio_report(self, portfolio, price_map: Dict[str, Sequence[float]],
                         benchmark_values: Optional[Sequence[float]] = None) -> RiskReport:
        values = self.portfolio_values(portfolio.weights, price_map)
        return self.report(values, benchmark_values)

    # =========================================================================
    # SUPPLEMENTARY RISK TOOLS
    # =========================================================================

    def correlation_risk(self, price_map: Dict[str, Sequence[float]]) -> CorrelationRisk:
        """Pairwise return correlations and the concentration they imply."""
        symbols = list(price_map)
        if len(symbols) < 2:
            return CorrelationRisk(pd.DataFrame(), 0.0, 0.0, 0.0, 1.0)

        n = min(len(price_map[s]) for s in symbols)
        returns = pd.DataFrame({
            s: self.returns_from_values(_array(price_map[s])[-n:]) for s in symbols
        })
        matrix = returns.corr().fillna(0.0)

        pairs = []
        for i, a in enumerate(symbols):
            for b in symbols[i + 1:]:
                pairs.append((a, b, abs(float(matrix.loc[a, b]))))
        correlations = [c for _, _, c in pairs]
        average = float(np.mean(correlations))
        maximum = float(np.max(correlations))
        limit = self.config.max_correlation
        return CorrelationRisk(
            matrix=matrix,
            average_correlation=average,
            max_correlation=maximum,
            risk_score=(maximum - limit) * 10 if maximum > limit else 0.0,
            diversification_benefit=1 - average,
            high_pairs=[p for p in pairs if p[2] > limit]
        )

    def dynamic_stop_loss(self, entry: float, atr: float, volatility: float,
                          direction: str = 'long') -> StopLevels:
        """Stop distance atr * multiplier * (1 + volatility), target at the configured reward/risk."""
        if direction not in ('long', 'short'):
            raise InvalidInputError(f"direction must be 'long' or 'short', got {direction!r}")
        distance = atr * self.config.atr_stop_multiplier * (1 + volatility)
        reward = distance * self.config.reward_risk_ratio
        sign = 1 if direction == 'long' else -1
        return StopLevels(
            entry=entry,
            stop_loss=entry - sign * distance,
            profit_target=entry + sign * reward,
            risk_amount=distance,
            reward_amount=reward,
            reward_risk_ratio=self.config.reward_risk_ratio
        )

    def position_size(self, capital: float, entry: float, stop_loss: float,
                      volatility: Optional[float] = None) -> PositionSize:
        """
        Size a position from the distance to its stop.

        units = capital * risk_per_trade / |entry - stop|, scaled by
        target_volatility / volatility (clamped) and capped so the position
        value stays within max_position_size_pct of capital.
        """
        cfg = self.config
        if capital <= 0 or entry <= 0:
            raise InvalidInputError(f"Capital and entry must be positive, got {capital} and {entry}")
        distance = abs(entry - stop_loss)
        if distance == 0:
            raise DegenerateInputError("Stop loss equals entry; risk per unit is zero")

        risk_amount = capital * cfg.risk_per_trade_pct
        adjustment = 1.0
        if volatility is not None and volatility > 0:
            adjustment = min(max(cfg.target_volatility / volatility, cfg.min_volatility_adjustment),
                             cfg.max_volatility_adjustment)

        units = risk_amount / distance * adjustment
        max_units = capital * cfg.max_position_size_pct / entry
        capped = units > max_units
        if capped:
            units = max_units
        logger.debug(f"Position size {units:.4f} units (adjustment {adjustment:.2f}, capped={capped})")
        return PositionSize(
            units=units,
            position_value=units * entry,
            risk_amount=units * distance,
            risk_pct=units * distance / capital * 100,
            volatility_adjustment=adjustment,
            stop_loss=stop_loss,
            capped=capped
        )

    @staticmethod
    def _require_returns(returns: Sequence[float]) -> np.ndarray:
        returns = _array(returns)
        if len(returns) == 0:
            raise InsufficientDataError("Empty return series", required=1, available=0)
        return returns
