"""Tests for edge-triggered signal detection"""

import pandas as pd
import pytest

from quant_analytics.alpha import (
    Direction, DetectorState, IndicatorSnapshot, PatternMatch, SignalCategory, SignalDetector, SignalKind, Strength
)
from quant_analytics.config import IndicatorConfig, SignalConfig
from quant_analytics.errors import InsufficientDataError, InvalidInputError

# Closes that push a 3-bar SMA above a 5-bar SMA on the last bar
GOLDEN = [10, 9, 8, 7, 6, 5, 20]
DEATH = [10, 11, 12, 13, 14, 15, 2]
TIMESTAMP = pd.Timestamp('2024-03-01')


@pytest.fixture
def fast_detector():
    return SignalDetector(indicator_config=IndicatorConfig(fast_ma_period=3, slow_ma_period=5))


@pytest.fixture
def two_bars(series_factory):
    """Too short for swing levels, so only snapshot readings matter."""
    return series_factory('X', [100.0, 100.0])


def kinds(result):
    return [s.kind for s in result.signals]


def snap(close=100.0, **readings):
    return IndicatorSnapshot(timestamp=TIMESTAMP, close=close, **readings)


def fire(prev, curr, series):
    return SignalDetector()._transitions(series, prev, curr, '1d')


class TestMovingAverageRules:
    """Crossovers fire once, on the crossing bar"""

    def test_golden_cross(self, fast_detector, series_factory):
        result = fast_detector.detect(series_factory('X', GOLDEN))
        assert SignalKind.MA_GOLDEN_CROSS in kinds(result)
        assert SignalKind.PRICE_ABOVE_MAS in kinds(result)

    def test_death_cross(self, fast_detector, series_factory):
        result = fast_detector.detect(series_factory('X', DEATH))
        assert SignalKind.MA_DEATH_CROSS in kinds(result)
        assert SignalKind.PRICE_BELOW_MAS in kinds(result)
        assert SignalKind.MA_GOLDEN_CROSS not in kinds(result)

    def test_persisting_condition_does_not_refire(self, fast_detector, series_factory):
        result = fast_detector.detect(series_factory('X', GOLDEN + [21]))
        assert SignalKind.MA_GOLDEN_CROSS not in kinds(result)
        assert SignalKind.PRICE_ABOVE_MAS not in kinds(result)

    def test_attributes_come_from_signal_table(self, fast_detector, series_factory):
        result = fast_detector.detect(series_factory('X', GOLDEN))
        cross = next(s for s in result.signals if s.kind == SignalKind.MA_GOLDEN_CROSS)
        assert cross.direction == Direction.BULLISH
        assert cross.strength == Strength.STRONG
        assert cross.confidence == 80
        assert cross.category == SignalCategory.TREND
        assert cross.symbol == 'X'
        assert cross.timeframe == '1d'

    def test_missing_table_entry_drops_signal(self, series_factory):
        config = SignalConfig()
        del config.signal_table['ma_golden_cross']
        detector = SignalDetector(config, IndicatorConfig(fast_ma_period=3, slow_ma_period=5))
        result = detector.detect(series_factory('X', GOLDEN))
        assert SignalKind.MA_GOLDEN_CROSS not in kinds(result)
        assert SignalKind.PRICE_ABOVE_MAS in kinds(result)


class TestThresholdRules:
    """RSI and volume threshold crossings"""

    def test_rsi_oversold_entry(self, series_factory):
        detector = SignalDetector(indicator_config=IndicatorConfig(rsi_period=3))
        result = detector.detect(series_factory('X', [10, 11, 12, 13, 12.9, 8]))
        oversold = [s for s in result.signals if s.kind == SignalKind.RSI_OVERSOLD]
        assert len(oversold) == 1
        assert oversold[0].direction == Direction.BULLISH
        assert oversold[0].payload['rsi'] < 30

    def test_rsi_overbought_entry(self, series_factory):
        detector = SignalDetector(indicator_config=IndicatorConfig(rsi_period=3))
        result = detector.detect(series_factory('X', [20, 19, 18, 17, 17.1, 22]))
        assert SignalKind.RSI_OVERBOUGHT in kinds(result)
        assert SignalKind.RSI_OVERSOLD not in kinds(result)

    def test_volume_spike(self, series_factory):
        detector = SignalDetector(indicator_config=IndicatorConfig(volume_ma_period=5))
        closes = [100.0 + i for i in range(11)]
        volumes = [100.0] * 10 + [500.0]
        result = detector.detect(series_factory('X', closes, volumes))
        spikes = [s for s in result.signals if s.kind == SignalKind.VOLUME_SPIKE]
        assert len(spikes) == 1
        assert spikes[0].direction == Direction.BULLISH
        assert spikes[0].payload['volume_ratio'] == pytest.approx(5.0)

    def test_sustained_volume_does_not_refire(self, series_factory):
        detector = SignalDetector(indicator_config=IndicatorConfig(volume_ma_period=5))
        closes = [100.0 + i for i in range(12)]
        volumes = [100.0] * 10 + [500.0, 600.0]
        result = detector.detect(series_factory('X', closes, volumes))
        assert SignalKind.VOLUME_SPIKE not in kinds(result)


class TestDetectInputs:
    """Short or unusable input"""

    def test_needs_two_bars(self, series_factory):
        with pytest.raises(InsufficientDataError):
            SignalDetector().detect(series_factory('X', [100.0]))

    def test_short_series_lists_skipped_indicators(self, series_factory):
        result = SignalDetector().detect(series_factory('X', [100.0, 101.0, 102.0]))
        assert 'rsi' in result.skipped
        assert 'sma_slow' in result.skipped

    def test_flat_series_is_quiet(self, flat_series):
        assert SignalDetector().detect(flat_series).signals == []


class TestStreamingUpdate:
    """Stateful updates through DetectorState"""

    def test_first_update_seeds(self, fast_detector, series_factory):
        state = DetectorState('X')
        result = fast_detector.update(state, series_factory('X', GOLDEN[:-1]))
        assert result.signals == []
        assert state.updates == 1
        assert state.previous is not None

    def test_transition_fires_once(self, fast_detector, series_factory):
        state = DetectorState('X')
        full = series_factory('X', GOLDEN)
        fast_detector.update(state, full[:-1])

        first = fast_detector.update(state, full)
        assert SignalKind.MA_GOLDEN_CROSS in kinds(first)

        again = fast_detector.update(state, full)
        assert again.signals == []
        assert state.updates == 2

    def test_earlier_series_rejected(self, fast_detector, series_factory):
        state = DetectorState('X')
        full = series_factory('X', GOLDEN)
        fast_detector.update(state, full)
        with pytest.raises(InvalidInputError):
            fast_detector.update(state, full[:3])

    def test_reset(self, fast_detector, series_factory):
        state = DetectorState('X')
        fast_detector.update(state, series_factory('X', GOLDEN))
        state.reset()
        assert state.previous is None
        assert state.updates == 0


class TestSnapshotRules:
    """Each rule fires on its own snapshot transition"""

    def test_macd_crossover(self, two_bars):
        signals = fire(snap(macd_histogram=-0.2), snap(macd=1.5, macd_signal=1.2, macd_histogram=0.3), two_bars)
        assert [s.kind for s in signals] == [SignalKind.MACD_CROSSOVER]
        assert signals[0].direction == Direction.BULLISH
        assert signals[0].payload == {'macd': 1.5, 'signal': 1.2}

    def test_macd_bearish_crossover(self, two_bars):
        signals = fire(snap(macd_histogram=0.1), snap(macd=-1.0, macd_signal=-0.8, macd_histogram=-0.2), two_bars)
        assert signals[0].direction == Direction.BEARISH

    def test_bollinger_breaks(self, two_bars):
        lower = fire(snap(101.0, bb_lower=100.0), snap(99.0, bb_lower=100.0), two_bars)
        assert [(s.kind, s.direction) for s in lower] == [(SignalKind.BOLLINGER_LOWER_BREAK, Direction.BULLISH)]

        upper = fire(snap(109.0, bb_upper=110.0), snap(111.0, bb_upper=110.0), two_bars)
        assert [(s.kind, s.direction) for s in upper] == [(SignalKind.BOLLINGER_UPPER_BREAK, Direction.BEARISH)]

    def test_stochastic_cross(self, two_bars):
        oversold = fire(snap(stoch_k=25.0), snap(stoch_k=15.0), two_bars)
        assert [(s.kind, s.direction) for s in oversold] == [(SignalKind.STOCHASTIC_CROSS, Direction.BULLISH)]
        assert oversold[0].strength == Strength.WEAK

        overbought = fire(snap(stoch_k=75.0), snap(stoch_k=85.0), two_bars)
        assert overbought[0].direction == Direction.BEARISH

    def test_adx_trend_direction_from_di(self, two_bars):
        rising = fire(snap(adx=20.0), snap(adx=30.0, plus_di=28.0, minus_di=12.0), two_bars)
        assert [(s.kind, s.direction) for s in rising] == [(SignalKind.ADX_TREND, Direction.BULLISH)]

        falling = fire(snap(adx=20.0), snap(adx=30.0, plus_di=10.0, minus_di=22.0), two_bars)
        assert falling[0].direction == Direction.BEARISH

    def test_adx_already_trending_is_quiet(self, two_bars):
        assert fire(snap(adx=30.0), snap(adx=35.0, plus_di=28.0, minus_di=12.0), two_bars) == []

    def test_support_entry(self, series_factory):
        # swing low at 100 and swing high at 120 in the bars before the last
        series = series_factory('X', [110, 105, 100, 105, 110, 115, 120, 115, 110, 105, 101.5])
        signals = fire(snap(105.0), snap(101.5), series)
        assert [(s.kind, s.direction) for s in signals] == [(SignalKind.SUPPORT_BOUNCE, Direction.BULLISH)]
        assert signals[0].payload['level'] == 100.0
        assert signals[0].payload['touches'] == 1.0

    def test_resistance_entry(self, series_factory):
        series = series_factory('X', [110, 115, 120, 115, 110, 105, 100, 105, 110, 115, 118.5])
        signals = fire(snap(115.0), snap(118.5), series)
        assert [(s.kind, s.direction) for s in signals] == [(SignalKind.RESISTANCE_REJECT, Direction.BEARISH)]
        assert signals[0].payload['level'] == 120.0

    def test_pattern_confirmation_fires_once(self, two_bars):
        match = PatternMatch('double_bottom', Direction.BULLISH, {'neckline': 11.0})
        confirmed = fire(snap(), snap(patterns={'double_bottom': match}), two_bars)
        assert [(s.kind, s.direction) for s in confirmed] == [(SignalKind.DOUBLE_BOTTOM, Direction.BULLISH)]
        assert confirmed[0].payload == {'neckline': 11.0}

        held = fire(snap(patterns={'double_bottom': match}), snap(patterns={'double_bottom': match}), two_bars)
        assert held == []

    def test_divergences(self, two_bars):
        signals = fire(snap(), snap(rsi_divergence=Direction.BULLISH, volume_divergence=Direction.BEARISH), two_bars)
        assert [(s.kind, s.direction) for s in signals] == [
            (SignalKind.RSI_DIVERGENCE, Direction.BULLISH),
            (SignalKind.VOLUME_PRICE_DIVERGENCE, Direction.BEARISH),
        ]

    def test_persisting_divergence_is_quiet(self, two_bars):
        assert fire(snap(rsi_divergence=Direction.BEARISH), snap(rsi_divergence=Direction.BEARISH), two_bars) == []


class TestSignalSerialization:
    """Signal.to_dict keeps the rating separate from rule readings"""

    def test_payload_does_not_shadow_rating(self, two_bars):
        signals = fire(snap(macd_histogram=-0.2), snap(macd=1.5, macd_signal=0.5, macd_histogram=0.3),
                       two_bars)
        data = signals[0].to_dict()
        assert data['signal'] == 'BUY'
        assert data['payload'] == {'macd': 1.5, 'signal': 0.5}
        assert data['kind'] == 'macd_crossover'
