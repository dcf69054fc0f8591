"""
Statistical Arbitrage Module
============================
Pair mean-reversion signals on the price ratio of two assets.

The ratio's z-score says how stretched the pair is; correlation and a
mean-reversion heuristic gate whether the stretch is tradable. The
"cointegration score" is only the fraction of bars on which the ratio moved
back toward its mean. It is not a statistical cointegration test.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import Dict, List, Optional, Sequence
import math
import logging

from ..errors import AnalyticsError, DegenerateInputError, InsufficientDataError, Result

logger = logging.getLogger(__name__)

# Ratio dispersion at or below this fraction of the mean is rounding noise
RELATIVE_STD_FLOOR = 1e-12


class PairSignal(Enum):
    """Pair trade direction (on the ratio A/B)."""
    LONG = "long"      # buy A, sell B
    SHORT = "short"    # sell A, buy B
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class ArbitragePair:
    """Ratio statistics and trade plan for one pair."""
    asset_a: str
    asset_b: str
    current_ratio: float
    mean_ratio: float
    std_ratio: float
    zscore: float
    correlation: float
    cointegration: float
    signal: PairSignal
    observations: int
    expected_profit_pct: Optional[float] = None
    time_horizon_days: Optional[int] = None
    stop_loss_ratio: Optional[float] = None
    target_ratio: Optional[float] = None

    @property
    def is_opportunity(self) -> bool:
        return self.signal != PairSignal.NEUTRAL

    def to_dict(self) -> dict:
        return {
            'asset_a': self.asset_a,
            'asset_b': self.asset_b,
            'current_ratio': self.current_ratio,
            'mean_ratio': self.mean_ratio,
            'std_ratio': self.std_ratio,
            'zscore': self.zscore,
            'correlation': self.correlation,
            'cointegration': self.cointegration,
            'signal': self.signal.value,
            'observations': self.observations,
            'expected_profit_pct': self.expected_profit_pct,
            'time_horizon_days': self.time_horizon_days,
            'stop_loss_ratio': self.stop_loss_ratio,
            'target_ratio': self.target_ratio
        }


def _closes(series) -> np.ndarray:
    if hasattr(series, 'closes'):
        return series.closes()
    return np.asarray(series, dtype=float)


def _ratio_std(ratio: np.ndarray) -> float:
    """Population std of the ratio; 0 when the ratio is constant up to rounding."""
    std = float(ratio.std())
    if std <= RELATIVE_STD_FLOOR * abs(float(ratio.mean())):
        return 0.0
    return std


class StatisticalArbitrageDetector:
    """Scores asset pairs for mean-reversion trades."""

    def __init__(self, config=None):
        from ..config import ArbitrageConfig
        self.config = config or ArbitrageConfig()

    @staticmethod
    def cointegration_score(ratio: np.ndarray) -> float:
        """Fraction of consecutive bars where |ratio - mean| shrank."""
        if len(ratio) < 2:
            return 0.0
        deviation = np.abs(ratio - ratio.mean())
        return float(np.mean(deviation[1:] < deviation[:-1]))

    @staticmethod
    def correlation(a: np.ndarray, b: np.ndarray) -> float:
        """Pearson correlation; 0 when either series is constant."""
        if a.std() == 0 or b.std() == 0:
            return 0.0
        return float(np.corrcoef(a, b)[0, 1])

    def analyze_pair(self, asset_a: str, prices_a, asset_b: str, prices_b) -> ArbitragePair:
        """
        Args:
            prices_a, prices_b: PriceSeries or close arrays; tail-aligned to
                the shorter one.
        """
        cfg = self.config
        a, b = _closes(prices_a), _closes(prices_b)
        n = min(len(a), len(b))
        if n < cfg.min_observations:
            raise InsufficientDataError(f"{asset_a}/{asset_b}: need {cfg.min_observations} aligned prices",
                                        required=cfg.min_observations, available=n)
        a, b = a[-n:], b[-n:]
        if np.any(a <= 0) or np.any(b <= 0):
            raise DegenerateInputError(f"{asset_a}/{asset_b}: non-positive price in ratio")

        ratio = a / b
        mean = float(ratio.mean())
        std = _ratio_std(ratio)
        current = float(ratio[-1])
        zscore = (current - mean) / std if std > 0 else 0.0
        correlation = self.correlation(a, b)
        cointegration = self.cointegration_score(ratio)

        signal = PairSignal.NEUTRAL
        if (std > 0 and abs(zscore) >= cfg.zscore_threshold
                and correlation > cfg.min_correlation and cointegration > cfg.min_cointegration):
            signal = PairSignal.LONG if zscore < 0 else PairSignal.SHORT

        plan = {}
        if signal != PairSignal.NEUTRAL:
            # LONG expects the ratio to rise back to its mean, SHORT to fall
            toward = 1 if signal == PairSignal.LONG else -1
            target_move = cfg.target_fraction * abs(zscore) * std
            plan = {
                'target_ratio': current + toward * target_move,
                'stop_loss_ratio': current - toward * cfg.stop_loss_std * std,
                'expected_profit_pct': target_move / current * 100,
                'time_horizon_days': int(math.ceil(abs(zscore) * cfg.days_per_zscore)),
            }
            logger.info(f"Pair {asset_a}/{asset_b}: {signal.value.upper()} z={zscore:.2f} "
                        f"corr={correlation:.2f} coint={cointegration:.2f}")

        return ArbitragePair(
            asset_a=asset_a,
            asset_b=asset_b,
            current_ratio=current,
            mean_ratio=mean,
            std_ratio=std,
            zscore=float(zscore),
            correlation=correlation,
            cointegration=cointegration,
            signal=signal,
            observations=n,
            **plan
        )

    def scan(self, series_map: Dict[str, object], pairs: Optional[Sequence[tuple]] = None) -> Dict[tuple, Result]:
        """
        Analyze the given pairs (default: every pair in symbol order).

        Per-pair failures are returned as failed Results; the returned dict
        is ordered by |zscore| descending with failures last.
        """
        symbols = list(series_map)
        pairs = list(pairs) if pairs is not None else list(combinations(symbols, 2))
        results: Dict[tuple, Result] = {}
        for a, b in pairs:
            try:
                results[(a, b)] = Result.success(self.analyze_pair(a, series_map[a], b, series_map[b]))
            except AnalyticsError as e:
                logger.warning(f"Pair {a}/{b} skipped: {e.message}")
                results[(a, b)] = Result.failure(e)

        def _order(item):
            result = item[1]
            return (0, -abs(result.value.zscore)) if result.ok else (1, 0.0)

        return dict(sorted(results.items(), key=_order))

    def opportunities(self, series_map: Dict[str, object]) -> List[ArbitragePair]:
        """Tradable pairs only, strongest first."""
        return [r.value for r in self.scan(series_map).values() if r.ok and r.value.is_opportunity]

    def ratio_frame(self, asset_a: str, prices_a, asset_b: str, prices_b) -> pd.DataFrame:
        """Aligned prices, ratio and full-sample z-score path for inspection."""
        a, b = _closes(prices_a), _closes(prices_b)
        n = min(len(a), len(b))
        ratio = a[-n:] / b[-n:]
        std = _ratio_std(ratio)
        return pd.DataFrame({
            asset_a: a[-n:],
            asset_b: b[-n:],
            'ratio': ratio,
            'zscore': (ratio - ratio.mean()) / std if std > 0 else np.zeros(n)
        })
