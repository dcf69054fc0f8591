"""
Signal Types
============
Discrete directional signals and the rating scale used to combine them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Union
from enum import Enum

import pandas as pd


class Direction(Enum):
    """Signal direction."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Strength(Enum):
    """Signal strength."""
    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"

    @property
    def score(self) -> int:
        return {'weak': 1, 'medium': 2, 'strong': 3}[self.value]


class SignalCategory(Enum):
    """Indicator family a signal belongs to (drives consensus weights)."""
    RSI = "rsi"
    MACD = "macd"
    BOLLINGER = "bollinger"
    VOLUME = "volume"
    TREND = "trend"
    MOMENTUM = "momentum"
    LEVELS = "levels"
    PATTERN = "pattern"


class SignalKind(Enum):
    """Detector rule that produced a signal."""
    MA_GOLDEN_CROSS = "ma_golden_cross"
    MA_DEATH_CROSS = "ma_death_cross"
    PRICE_ABOVE_MAS = "price_above_mas"
    PRICE_BELOW_MAS = "price_below_mas"
    RSI_OVERSOLD = "rsi_oversold"
    RSI_OVERBOUGHT = "rsi_overbought"
    RSI_DIVERGENCE = "rsi_divergence"
    MACD_CROSSOVER = "macd_crossover"
    BOLLINGER_LOWER_BREAK = "bollinger_lower_break"
    BOLLINGER_UPPER_BREAK = "bollinger_upper_break"
    STOCHASTIC_CROSS = "stochastic_cross"
    ADX_TREND = "adx_trend"
    SUPPORT_BOUNCE = "support_bounce"
    RESISTANCE_REJECT = "resistance_reject"
    DOUBLE_BOTTOM = "double_bottom"
    DOUBLE_TOP = "double_top"
    TRIANGLE_BREAKOUT = "triangle_breakout"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    VOLUME_SPIKE = "volume_spike"
    VOLUME_PRICE_DIVERGENCE = "volume_price_divergence"


class SignalType(Enum):
    """Trading signal rating."""
    STRONG_BUY = 2
    BUY = 1
    NEUTRAL = 0
    SELL = -1
    STRONG_SELL = -2

    @property
    def scalar(self) -> float:
        """Numeric value used by the consensus score."""
        return _SCALARS[self]

    @classmethod
    def from_signal(cls, direction: Direction, strength: Strength) -> 'SignalType':
        if direction == Direction.BULLISH:
            return cls.STRONG_BUY if strength == Strength.STRONG else cls.BUY
        if direction == Direction.BEARISH:
            return cls.STRONG_SELL if strength == Strength.STRONG else cls.SELL
        return cls.NEUTRAL


_SCALARS = {
    SignalType.STRONG_BUY: 1.0,
    SignalType.BUY: 0.6,
    SignalType.NEUTRAL: 0.0,
    SignalType.SELL: -0.6,
    SignalType.STRONG_SELL: -1.0,
}


@dataclass(frozen=True)
class Signal:
    """A directional signal emitted on an indicator state transition."""
    symbol: str
    kind: SignalKind
    direction: Direction
    strength: Strength
    confidence: float  # 0 to 100
    category: SignalCategory
    timeframe: str
    timestamp: Union[datetime, pd.Timestamp]
    description: str = ""
    payload: Dict[str, float] = field(default_factory=dict)

    @property
    def signal_type(self) -> SignalType:
        return SignalType.from_signal(self.direction, self.strength)

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'kind': self.kind.value,
            'direction': self.direction.value,
            'strength': self.strength.value,
            'confidence': self.confidence,
            'category': self.category.value,
            'timeframe': self.timeframe,
            'timestamp': str(self.timestamp),
            'signal': self.signal_type.name,
            'description': self.description,
            'payload': dict(self.payload)
        }


def summarize_kinds(signals: Iterable[Signal]) -> Dict[str, int]:
    """Count signals per kind."""
    summary: Dict[str, int] = {}
    for signal in signals:
        summary[signal.kind.value] = summary.get(signal.kind.value, 0) + 1
    return summary
