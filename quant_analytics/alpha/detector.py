"""
Signal Detector
===============
Edge-triggered signal detection.

Every rule compares an IndicatorSnapshot taken at the previous observation
with one taken now and fires only when the condition changes (a crossover,
a threshold crossing, a pattern becoming confirmed). A condition that
simply persists never fires again.

Two entry points share the same rules:
- detect(): stateless, compares the last two bars of a series
- update(): streaming, compares against the snapshot kept in a DetectorState
"""

import pandas as pd
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union
import logging

from .signals import Direction, Signal, SignalCategory, SignalKind, Strength
from .patterns import (
    PatternMatch, find_support_resistance, detect_double_top, detect_double_bottom,
    detect_head_and_shoulders, detect_triangle_breakout, detect_rsi_divergence,
    detect_price_volume_divergence
)
from ..errors import InsufficientDataError, InvalidInputError
from ..features.indicators import IndicatorEngine, IndicatorSet

logger = logging.getLogger(__name__)

PATTERN_KINDS = {
    'double_top': SignalKind.DOUBLE_TOP,
    'double_bottom': SignalKind.DOUBLE_BOTTOM,
    'triangle_breakout': SignalKind.TRIANGLE_BREAKOUT,
    'head_and_shoulders': SignalKind.HEAD_AND_SHOULDERS,
}


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator readings at one bar."""
    timestamp: Union[datetime, pd.Timestamp]
    close: float
    close_change: Optional[float] = None
    sma_fast: Optional[float] = None
    sma_slow: Optional[float] = None
    rsi: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None
    bb_upper: Optional[float] = None
    bb_lower: Optional[float] = None
    stoch_k: Optional[float] = None
    adx: Optional[float] = None
    plus_di: Optional[float] = None
    minus_di: Optional[float] = None
    volume_ratio: Optional[float] = None
    rsi_divergence: Optional[Direction] = None
    volume_divergence: Optional[Direction] = None
    patterns: Dict[str, PatternMatch] = field(default_factory=dict)

    @property
    def above_mas(self) -> Optional[bool]:
        if self.sma_fast is None or self.sma_slow is None:
            return None
        return self.close > self.sma_fast and self.close > self.sma_slow

    @property
    def below_mas(self) -> Optional[bool]:
        if self.sma_fast is None or self.sma_slow is None:
            return None
        return self.close < self.sma_fast and self.close < self.sma_slow


@dataclass
class DetectorState:
    """Previous snapshot for one (symbol, timeframe)."""
    symbol: str
    timeframe: str = "1d"
    previous: Optional[IndicatorSnapshot] = None
    updates: int = 0

    def reset(self):
        self.previous = None
        self.updates = 0


@dataclass
class DetectionResult:
    """Signals fired at one observation."""
    symbol: str
    timeframe: str
    signals: List[Signal]
    skipped: List[str] = field(default_factory=list)
    timestamp: Optional[Union[datetime, pd.Timestamp]] = None

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'timeframe': self.timeframe,
            'timestamp': str(self.timestamp) if self.timestamp is not None else None,
            'signals': [s.to_dict() for s in self.signals],
            'skipped_indicators': list(self.skipped)
        }


def _known(*values) -> bool:
    return all(v is not None for v in values)


def _crossed_above(prev_a, prev_b, a, b) -> bool:
    return _known(prev_a, prev_b, a, b) and prev_a <= prev_b and a > b


def _crossed_below(prev_a, prev_b, a, b) -> bool:
    return _known(prev_a, prev_b, a, b) and prev_a >= prev_b and a < b


class SignalDetector:
    """
    Detects directional signals from indicator state transitions.

    Strength, confidence and category come from the configured signal
    table, never from the rule itself.
    """

    def __init__(self, config=None, indicator_config=None):
        from ..config import SignalConfig
        self.config = config or SignalConfig()
        self.engine = IndicatorEngine(indicator_config)

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def snapshot(self, series, indicators: Optional[IndicatorSet] = None, offset: int = 0) -> IndicatorSnapshot:
        """Indicator readings ``offset`` bars before the last bar of ``series``."""
        n = len(series) - offset
        if n < 1:
            raise InsufficientDataError(f"{series.symbol}: no bar at offset {offset}",
                                        required=offset + 1, available=len(series))
        if indicators is None:
            indicators = self.engine.compute_all(series)
        cfg = self.config

        def value(name: str, key: Optional[str] = None) -> Optional[float]:
            result = indicators.get(name)
            if result is None:
                return None
            values = result.values if key is None else result.extra.get(key)
            if values is None or len(values) <= offset:
                return None
            return float(values[-1 - offset])

        closes = series.closes()[:n]
        highs = series.highs()[:n]
        lows = series.lows()[:n]
        volumes = series.volumes()[:n]

        rsi_divergence = None
        rsi = indicators.get('rsi')
        if rsi is not None and len(rsi.values) > offset:
            rsi_divergence = detect_rsi_divergence(
                closes, rsi.values[:len(rsi.values) - offset], cfg.divergence_lookback)

        window = slice(-cfg.pattern_lookback, None)
        h, l, c = highs[window], lows[window], closes[window]
        tolerance = cfg.pattern_tolerance_pct
        candidates = {
            'double_top': detect_double_top(h, l, c, tolerance),
            'double_bottom': detect_double_bottom(h, l, c, tolerance),
            'triangle_breakout': detect_triangle_breakout(highs, lows, closes, cfg.triangle_lookback),
            'head_and_shoulders': detect_head_and_shoulders(h, l, c, tolerance),
        }
        patterns = {key: match for key, match in candidates.items() if match is not None}

        return IndicatorSnapshot(
            timestamp=series[n - 1].timestamp,
            close=float(closes[-1]),
            close_change=float(closes[-1] - closes[-2]) if n > 1 else None,
            sma_fast=value('sma_fast'),
            sma_slow=value('sma_slow'),
            rsi=value('rsi'),
            macd=value('macd'),
            macd_signal=value('macd', 'signal'),
            macd_histogram=value('macd', 'histogram'),
            bb_upper=value('bollinger', 'upper'),
            bb_lower=value('bollinger', 'lower'),
            stoch_k=value('stochastic'),
            adx=value('adx'),
            plus_di=value('adx', 'plus_di'),
            minus_di=value('adx', 'minus_di'),
            volume_ratio=value('volume_ratio'),
            rsi_divergence=rsi_divergence,
            volume_divergence=detect_price_volume_divergence(closes, volumes, cfg.volume_divergence_lookback),
            patterns=patterns
        )

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def detect(self, series, timeframe: str = "1d") -> DetectionResult:
        """Signals triggered by the last bar of ``series``."""
        if len(series) < 2:
            raise InsufficientDataError(f"{series.symbol}: need two bars to detect transitions",
                                        required=2, available=len(series))
        indicators = self.engine.compute_all(series)
        previous = self.snapshot(series, indicators, offset=1)
        current = self.snapshot(series, indicators, offset=0)
        signals = self._transitions(series, previous, current, timeframe)
        logger.debug(f"{series.symbol} [{timeframe}]: {len(signals)} signals")
        return DetectionResult(series.symbol, timeframe, signals, sorted(indicators.errors), current.timestamp)

    def update(self, state: DetectorState, series) -> DetectionResult:
        """
        Advance ``state`` to the last bar of ``series``.

        The first update only seeds the state. Re-submitting a series whose
        last bar was already seen fires nothing.
        """
        if len(series) == 0:
            raise InsufficientDataError(f"{series.symbol}: empty series", required=1, available=0)
        last = series.last.timestamp
        previous = state.previous
        if previous is not None:
            if last == previous.timestamp:
                return DetectionResult(series.symbol, state.timeframe, [], [], last)
            if last < previous.timestamp:
                raise InvalidInputError(f"{series.symbol}: series ends at {last}, "
                                        f"before last observation {previous.timestamp}")

        indicators = self.engine.compute_all(series)
        current = self.snapshot(series, indicators, offset=0)
        signals = [] if previous is None else self._transitions(series, previous, current, state.timeframe)
        state.previous = current
        state.updates += 1
        return DetectionResult(series.symbol, state.timeframe, signals, sorted(indicators.errors), last)

    # =========================================================================
    # RULES
    # =========================================================================

    def _emit(self, out: List[Signal], symbol: str, kind: SignalKind, direction: Direction,
              timeframe: str, current: IndicatorSnapshot, description: str, **payload):
        spec = self.config.signal_table.get(kind.value)
        if spec is None:
            logger.warning(f"No signal table entry for {kind.value}; signal dropped")
            return
        out.append(Signal(
            symbol=symbol,
            kind=kind,
            direction=direction,
            strength=Strength(spec.strength),
            confidence=float(spec.confidence),
            category=SignalCategory(spec.category),
            timeframe=timeframe,
            timestamp=current.timestamp,
            description=description,
            payload={k: float(v) for k, v in payload.items()}
        ))

    def _transitions(self, series, prev: IndicatorSnapshot, curr: IndicatorSnapshot,
                     timeframe: str) -> List[Signal]:
        cfg = self.config
        symbol = series.symbol
        signals: List[Signal] = []

        def emit(kind, direction, description, **payload):
            self._emit(signals, symbol, kind, direction, timeframe, curr, description, **payload)

        # 1. Moving averages
        if _crossed_above(prev.sma_fast, prev.sma_slow, curr.sma_fast, curr.sma_slow):
            emit(SignalKind.MA_GOLDEN_CROSS, Direction.BULLISH, "Golden Cross - fast SMA above slow SMA",
                 sma_fast=curr.sma_fast, sma_slow=curr.sma_slow)
        elif _crossed_below(prev.sma_fast, prev.sma_slow, curr.sma_fast, curr.sma_slow):
            emit(SignalKind.MA_DEATH_CROSS, Direction.BEARISH, "Death Cross - fast SMA below slow SMA",
                 sma_fast=curr.sma_fast, sma_slow=curr.sma_slow)

        if prev.above_mas is False and curr.above_mas:
            emit(SignalKind.PRICE_ABOVE_MAS, Direction.BULLISH, "Price moved above key moving averages",
                 close=curr.close)
        if prev.below_mas is False and curr.below_mas:
            emit(SignalKind.PRICE_BELOW_MAS, Direction.BEARISH, "Price moved below key moving averages",
                 close=curr.close)

        # 2. RSI
        if _crossed_below(prev.rsi, cfg.rsi_oversold, curr.rsi, cfg.rsi_oversold):
            emit(SignalKind.RSI_OVERSOLD, Direction.BULLISH, f"RSI oversold at {curr.rsi:.2f}", rsi=curr.rsi)
        elif _crossed_above(prev.rsi, cfg.rsi_overbought, curr.rsi, cfg.rsi_overbought):
            emit(SignalKind.RSI_OVERBOUGHT, Direction.BEARISH, f"RSI overbought at {curr.rsi:.2f}", rsi=curr.rsi)

        if curr.rsi_divergence is not None and curr.rsi_divergence != prev.rsi_divergence:
            emit(SignalKind.RSI_DIVERGENCE, curr.rsi_divergence,
                 f"RSI {curr.rsi_divergence.value} divergence detected")

        # 3. MACD
        if _crossed_above(prev.macd_histogram, 0.0, curr.macd_histogram, 0.0):
            emit(SignalKind.MACD_CROSSOVER, Direction.BULLISH, "MACD bullish crossover",
                 macd=curr.macd, signal=curr.macd_signal)
        elif _crossed_below(prev.macd_histogram, 0.0, curr.macd_histogram, 0.0):
            emit(SignalKind.MACD_CROSSOVER, Direction.BEARISH, "MACD bearish crossover",
                 macd=curr.macd, signal=curr.macd_signal)

        # 4. Bollinger bands
        if _crossed_below(prev.close, prev.bb_lower, curr.close, curr.bb_lower):
            emit(SignalKind.BOLLINGER_LOWER_BREAK, Direction.BULLISH, "Close below lower Bollinger band",
                 band=curr.bb_lower)
        elif _crossed_above(prev.close, prev.bb_upper, curr.close, curr.bb_upper):
            emit(SignalKind.BOLLINGER_UPPER_BREAK, Direction.BEARISH, "Close above upper Bollinger band",
                 band=curr.bb_upper)

        # 5. Stochastic
        if _crossed_below(prev.stoch_k, cfg.stochastic_oversold, curr.stoch_k, cfg.stochastic_oversold):
            emit(SignalKind.STOCHASTIC_CROSS, Direction.BULLISH, f"Stochastic oversold at {curr.stoch_k:.1f}",
                 stoch_k=curr.stoch_k)
        elif _crossed_above(prev.stoch_k, cfg.stochastic_overbought, curr.stoch_k, cfg.stochastic_overbought):
            emit(SignalKind.STOCHASTIC_CROSS, Direction.BEARISH, f"Stochastic overbought at {curr.stoch_k:.1f}",
                 stoch_k=curr.stoch_k)

        # 6. ADX trend strength
        if _crossed_above(prev.adx, cfg.adx_trend_threshold, curr.adx, cfg.adx_trend_threshold):
            if curr.plus_di > curr.minus_di:
                direction = Direction.BULLISH
            elif curr.plus_di < curr.minus_di:
                direction = Direction.BEARISH
            else:
                direction = Direction.NEUTRAL
            emit(SignalKind.ADX_TREND, direction, f"Trend strengthening, ADX {curr.adx:.1f}",
                 adx=curr.adx, plus_di=curr.plus_di, minus_di=curr.minus_di)

        # 7. Support / resistance
        highs, lows = series.highs()[:-1], series.lows()[:-1]
        if len(highs):
            supports, resistances = find_support_resistance(
                highs, lows, cfg.level_lookback, cfg.level_cluster_pct)
            proximity = cfg.level_proximity_pct
            for kind, levels, direction, label in (
                (SignalKind.SUPPORT_BOUNCE, supports, Direction.BULLISH, 'support'),
                (SignalKind.RESISTANCE_REJECT, resistances, Direction.BEARISH, 'resistance'),
            ):
                entered = [lvl for lvl in levels
                           if lvl.distance(curr.close) < proximity <= lvl.distance(prev.close)]
                if entered:
                    level = min(entered, key=lambda lvl: lvl.distance(curr.close))
                    emit(kind, direction, f"Price near {label} at {level.price:.2f}",
                         level=level.price, level_strength=level.strength, touches=level.touches)

        # 8. Chart patterns
        for key, kind in PATTERN_KINDS.items():
            match = curr.patterns.get(key)
            before = prev.patterns.get(key)
            if match is not None and (before is None or before.direction != match.direction):
                emit(kind, match.direction, f"{match.name.replace('_', ' ').title()} confirmed", **match.details)

        # 9. Volume
        if _known(prev.volume_ratio, curr.volume_ratio) \
                and prev.volume_ratio < cfg.volume_spike_ratio <= curr.volume_ratio:
            change = curr.close_change or 0.0
            direction = Direction.BULLISH if change > 0 else Direction.BEARISH if change < 0 else Direction.NEUTRAL
            emit(SignalKind.VOLUME_SPIKE, direction, f"Volume spike: {curr.volume_ratio:.2f}x average",
                 volume_ratio=curr.volume_ratio)

        if curr.volume_divergence is not None and curr.volume_divergence != prev.volume_divergence:
            emit(SignalKind.VOLUME_PRICE_DIVERGENCE, curr.volume_divergence, "Price-volume divergence detected")

        return signals
