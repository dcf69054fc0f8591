"""
Signal Aggregator
=================
Weighted consensus over a set of signals.

Each signal maps to a rating scalar (STRONG_BUY 1.0 ... STRONG_SELL -1.0)
and is weighted by its category. The consensus score is the weighted mean
of the scalars; confidence falls as the scalars disagree.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple
import logging

from .signals import Signal, SignalType

logger = logging.getLogger(__name__)


@dataclass
class CategoryBreakdown:
    """Contribution of one signal category to the consensus."""
    count: int = 0
    weight: float = 0.0
    contribution: float = 0.0  # sum of scalar * weight
    mean_scalar: float = 0.0

    def to_dict(self) -> dict:
        return {
            'count': self.count,
            'weight': self.weight,
            'contribution': self.contribution,
            'mean_scalar': self.mean_scalar
        }


@dataclass
class AggregatedSignal:
    """Consensus direction, score and confidence."""
    direction: SignalType
    score: float        # -1 to 1
    confidence: float   # 0 to 100
    signal_count: int
    breakdown: Dict[str, CategoryBreakdown] = field(default_factory=dict)

    @property
    def is_actionable(self) -> bool:
        return self.direction != SignalType.NEUTRAL

    def to_dict(self) -> dict:
        return {
            'direction': self.direction.name,
            'score': self.score,
            'confidence': self.confidence,
            'signal_count': self.signal_count,
            'breakdown': {k: v.to_dict() for k, v in self.breakdown.items()}
        }


class SignalAggregator:
    """
    Combines signals into one consensus rating.

    score = sum(scalar * weight) / sum(weight), classified against the
    configured thresholds. Exactly balanced bullish and bearish weight is
    NEUTRAL with a score of 0. Confidence is
    max(min_confidence, 100 - variance(scalars) * 100); with no signals it is 0.
    """

    def __init__(self, config=None):
        from ..config import AggregatorConfig
        self.config = config or AggregatorConfig()

    def weight_for(self, category: str) -> float:
        return self.config.category_weights.get(category, self.config.default_weight)

    def aggregate(self, signals: Iterable[Signal]) -> AggregatedSignal:
        """Consensus over detector signals, weighted by category."""
        entries = []
        for signal in signals:
            category = signal.category.value
            entries.append((signal.signal_type, self.weight_for(category), category))
        return self._combine(entries)

    def aggregate_weighted(self, ratings: Sequence[Tuple[SignalType, float]]) -> AggregatedSignal:
        """Consensus over explicit (rating, weight) pairs."""
        return self._combine([(rating, weight, rating.name.lower()) for rating, weight in ratings])

    def classify(self, score: float) -> SignalType:
        cfg = self.config
        if score > cfg.strong_buy_threshold:
            return SignalType.STRONG_BUY
        if score > cfg.buy_threshold:
            return SignalType.BUY
        if score < cfg.strong_sell_threshold:
            return SignalType.STRONG_SELL
        if score < cfg.sell_threshold:
            return SignalType.SELL
        return SignalType.NEUTRAL

    def _combine(self, entries: List[Tuple[SignalType, float, str]]) -> AggregatedSignal:
        entries = [e for e in entries if e[1] > 0]
        if not entries:
            return AggregatedSignal(SignalType.NEUTRAL, 0.0, 0.0, 0)

        breakdown: Dict[str, CategoryBreakdown] = {}
        bullish = 0.0
        bearish = 0.0
        total_weight = 0.0
        for rating, weight, category in entries:
            weighted = rating.scalar * weight
            if weighted > 0:
                bullish += weighted
            elif weighted < 0:
                bearish -= weighted
            total_weight += weight

            part = breakdown.setdefault(category, CategoryBreakdown())
            part.count += 1
            part.weight += weight
            part.contribution += weighted

        for category, part in breakdown.items():
            scalars = [r.scalar for r, _, c in entries if c == category]
            part.mean_scalar = float(np.mean(scalars))

        if np.isclose(bullish, bearish, rtol=0.0, atol=1e-12):
            score = 0.0
        else:
            score = (bullish - bearish) / total_weight
        score = max(-1.0, min(1.0, score))

        variance = float(np.var([r.scalar for r, _, _ in entries]))
        confidence = max(self.config.min_confidence, 100 - variance * 100)

        direction = self.classify(score)
        logger.debug(f"Aggregated {len(entries)} signals: score={score:.3f} -> {direction.name} "
                     f"(conf: {confidence:.1f})")
        return AggregatedSignal(
            direction=direction,
            score=score,
            confidence=min(100.0, confidence),
            signal_count=len(entries),
            breakdown=breakdown
        )
