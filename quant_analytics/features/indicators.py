"""
Technical Indicators Module
===========================
Pure indicator functions over numpy arrays plus an engine that computes the
configured set for a PriceSeries.

Every indicator returns only fully-formed values aligned to the tail of its
input: an indicator with lookback ``p`` over ``n`` bars yields the values
for the last ``n - p + 1`` (or fewer) bars, never NaN padding. Inputs that
are too short raise InsufficientDataError.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Union
import logging

from ..errors import AnalyticsError, InsufficientDataError, InvalidInputError

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def _as_array(values: ArrayLike) -> np.ndarray:
    return np.asarray(values, dtype=float)


def _require(name: str, available: int, required: int):
    if available < required:
        raise InsufficientDataError(
            f"{name} needs {required} points, got {available}",
            required=required,
            available=available
        )


def _check_period(name: str, period: int):
    if period < 1:
        raise InvalidInputError(f"{name} period must be positive, got {period}")


def _frozen(values: np.ndarray) -> np.ndarray:
    values = np.array(values, dtype=float)
    values.flags.writeable = False
    return values


@dataclass(frozen=True, eq=False)
class IndicatorResult:
    """Computed indicator series, aligned to the tail of the input."""
    name: str
    values: np.ndarray
    params: Dict[str, float] = field(default_factory=dict)
    extra: Dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'values', _frozen(self.values))
        object.__setattr__(self, 'extra', {k: _frozen(v) for k, v in self.extra.items()})

    @property
    def current(self) -> float:
        return float(self.values[-1])

    @property
    def previous(self) -> Optional[float]:
        return float(self.values[-2]) if len(self.values) > 1 else None

    def latest(self, key: str) -> float:
        """Last value of an auxiliary series."""
        return float(self.extra[key][-1])

    def __len__(self) -> int:
        return len(self.values)

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'current': self.current,
            'length': len(self.values),
            'params': dict(self.params),
            'extra': {k: float(v[-1]) for k, v in self.extra.items() if len(v)}
        }


class TechnicalIndicators:
    """Technical analysis indicators."""

    @staticmethod
    def sma(values: ArrayLike, period: int) -> np.ndarray:
        """Simple Moving Average (length n - period + 1)."""
        _check_period('SMA', period)
        values = _as_array(values)
        _require('SMA', len(values), period)
        return pd.Series(values).rolling(window=period).mean().to_numpy()[period - 1:]

    @staticmethod
    def ema(values: ArrayLike, period: int, smoothing: float = 2.0) -> np.ndarray:
        """
        Exponential Moving Average.

        Seeded with the SMA of the first window, then
        ema[t] = x[t] * m + ema[t-1] * (1 - m) with m = smoothing / (period + 1).
        """
        _check_period('EMA', period)
        values = _as_array(values)
        _require('EMA', len(values), period)

        multiplier = smoothing / (period + 1)
        ema = np.empty(len(values) - period + 1)
        ema[0] = values[:period].mean()
        for i, price in enumerate(values[period:], start=1):
            ema[i] = price * multiplier + ema[i - 1] * (1 - multiplier)
        return ema

    @staticmethod
    def rsi(closes: ArrayLike, period: int = 14) -> np.ndarray:
        """
        Relative Strength Index with Wilder smoothing.

        The first value uses the simple average gain/loss of the first
        ``period`` changes; later values are Wilder-smoothed. When the
        average loss is zero the RSI is 100.
        """
        _check_period('RSI', period)
        closes = _as_array(closes)
        _require('RSI', len(closes), period + 1)

        changes = np.diff(closes)
        gains = np.where(changes > 0, changes, 0.0)
        losses = np.where(changes < 0, -changes, 0.0)

        avg_gain = gains[:period].mean()
        avg_loss = losses[:period].mean()

        def _value(gain: float, loss: float) -> float:
            if loss == 0:
                return 100.0
            return 100 - (100 / (1 + gain / loss))

        rsi = [_value(avg_gain, avg_loss)]
        for gain, loss in zip(gains[period:], losses[period:]):
            avg_gain = (avg_gain * (period - 1) + gain) / period
            avg_loss = (avg_loss * (period - 1) + loss) / period
            rsi.append(_value(avg_gain, avg_loss))
        return np.array(rsi)

    @staticmethod
    def macd(closes: ArrayLike, fast: int = 12, slow: int = 26, signal: int = 9,
             smoothing: float = 2.0) -> Dict[str, np.ndarray]:
        """
        Moving Average Convergence Divergence.

        macd = EMA(fast) - EMA(slow) over their common tail; signal is the
        EMA of the macd line; histogram is macd - signal over the signal's
        span. All three are returned tail-aligned to the signal length.
        """
        if fast >= slow:
            raise InvalidInputError(f"MACD fast period ({fast}) must be below slow ({slow})")
        closes = _as_array(closes)
        _require('MACD', len(closes), slow + signal - 1)

        ema_fast = TechnicalIndicators.ema(closes, fast, smoothing)
        ema_slow = TechnicalIndicators.ema(closes, slow, smoothing)
        macd_line = ema_fast[-len(ema_slow):] - ema_slow
        signal_line = TechnicalIndicators.ema(macd_line, signal, smoothing)
        macd_tail = macd_line[-len(signal_line):]

        return {
            'macd': macd_tail,
            'signal': signal_line,
            'histogram': macd_tail - signal_line,
            'macd_full': macd_line
        }

    @staticmethod
    def bollinger_bands(closes: ArrayLike, period: int = 20, std_dev: float = 2.0) -> Dict[str, np.ndarray]:
        """Bollinger Bands with population standard deviation."""
        _check_period('Bollinger', period)
        closes = _as_array(closes)
        _require('Bollinger', len(closes), period)

        prices = pd.Series(closes)
        middle = prices.rolling(window=period).mean().to_numpy()[period - 1:]
        std = prices.rolling(window=period).std(ddof=0).to_numpy()[period - 1:]
        upper = middle + std * std_dev
        lower = middle - std * std_dev
        price = closes[period - 1:]

        width = upper - lower
        # Zero-width bands put price in the middle
        with np.errstate(divide='ignore', invalid='ignore'):
            pct_b = np.where(width > 0, (price - lower) / width, 0.5)
            bandwidth = np.where(middle != 0, width / middle, 0.0)

        return {
            'upper': upper,
            'middle': middle,
            'lower': lower,
            'pct_b': pct_b,
            'bandwidth': bandwidth
        }

    @staticmethod
    def true_range(high: ArrayLike, low: ArrayLike, close: ArrayLike) -> np.ndarray:
        """True range from the second bar onward (length n - 1)."""
        high, low, close = _as_array(high), _as_array(low), _as_array(close)
        _require('True range', len(close), 2)
        prev_close = close[:-1]
        tr1 = high[1:] - low[1:]
        tr2 = np.abs(high[1:] - prev_close)
        tr3 = np.abs(low[1:] - prev_close)
        return np.maximum(tr1, np.maximum(tr2, tr3))

    @staticmethod
    def atr(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> np.ndarray:
        """Average True Range: SMA of the true range."""
        _check_period('ATR', period)
        _require('ATR', len(close), period + 1)
        return TechnicalIndicators.sma(TechnicalIndicators.true_range(high, low, close), period)

    @staticmethod
    def stochastic(high: ArrayLike, low: ArrayLike, close: ArrayLike,
                   period: int = 14, d_period: int = 3) -> Dict[str, np.ndarray]:
        """Stochastic Oscillator. A zero high-low range reads 50."""
        _check_period('Stochastic', period)
        high, low, close = _as_array(high), _as_array(low), _as_array(close)
        _require('Stochastic', len(close), period)

        highest = pd.Series(high).rolling(window=period).max().to_numpy()[period - 1:]
        lowest = pd.Series(low).rolling(window=period).min().to_numpy()[period - 1:]
        price = close[period - 1:]
        span = highest - lowest
        with np.errstate(divide='ignore', invalid='ignore'):
            stoch_k = np.where(span > 0, 100 * (price - lowest) / span, 50.0)

        result = {'k': stoch_k}
        if len(stoch_k) >= d_period:
            result['d'] = TechnicalIndicators.sma(stoch_k, d_period)
        return result

    @staticmethod
    def williams_r(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> np.ndarray:
        """Williams %R in [-100, 0]. A zero range reads -50."""
        _check_period('Williams %R', period)
        high, low, close = _as_array(high), _as_array(low), _as_array(close)
        _require('Williams %R', len(close), period)

        highest = pd.Series(high).rolling(window=period).max().to_numpy()[period - 1:]
        lowest = pd.Series(low).rolling(window=period).min().to_numpy()[period - 1:]
        span = highest - lowest
        with np.errstate(divide='ignore', invalid='ignore'):
            return np.where(span > 0, -100 * (highest - close[period - 1:]) / span, -50.0)

    @staticmethod
    def obv(close: ArrayLike, volume: ArrayLike) -> np.ndarray:
        """On-Balance Volume, starting at 0."""
        close, volume = _as_array(close), _as_array(volume)
        _require('OBV', len(close), 1)
        direction = np.sign(np.diff(close))
        return np.concatenate([[0.0], np.cumsum(direction * volume[1:])])

    @staticmethod
    def vwap(high: ArrayLike, low: ArrayLike, close: ArrayLike, volume: ArrayLike) -> np.ndarray:
        """
        Volume Weighted Average Price, cumulative from the first bar.

        While no volume has traded yet the typical price is returned.
        """
        high, low, close, volume = _as_array(high), _as_array(low), _as_array(close), _as_array(volume)
        _require('VWAP', len(close), 1)
        typical = (high + low + close) / 3
        cum_volume = np.cumsum(volume)
        cum_pv = np.cumsum(typical * volume)
        with np.errstate(divide='ignore', invalid='ignore'):
            return np.where(cum_volume > 0, cum_pv / cum_volume, typical)

    @staticmethod
    def adx(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> Dict[str, np.ndarray]:
        """
        Average Directional Index with Wilder smoothing.

        Returns adx, plus_di and minus_di aligned to the adx length
        (n - 2 * period + 1).
        """
        _check_period('ADX', period)
        high, low, close = _as_array(high), _as_array(low), _as_array(close)
        _require('ADX', len(close), 2 * period)

        up_move = high[1:] - high[:-1]
        down_move = low[:-1] - low[1:]
        plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
        minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)
        tr = TechnicalIndicators.true_range(high, low, close)

        def _wilder_sum(values: np.ndarray) -> np.ndarray:
            out = np.empty(len(values) - period + 1)
            out[0] = values[:period].sum()
            for i, value in enumerate(values[period:], start=1):
                out[i] = out[i - 1] - out[i - 1] / period + value
            return out

        tr_s = _wilder_sum(tr)
        plus_s = _wilder_sum(plus_dm)
        minus_s = _wilder_sum(minus_dm)

        with np.errstate(divide='ignore', invalid='ignore'):
            plus_di = np.where(tr_s > 0, 100 * plus_s / tr_s, 0.0)
            minus_di = np.where(tr_s > 0, 100 * minus_s / tr_s, 0.0)
            di_sum = plus_di + minus_di
            dx = np.where(di_sum > 0, 100 * np.abs(plus_di - minus_di) / di_sum, 0.0)

        adx = np.empty(len(dx) - period + 1)
        adx[0] = dx[:period].mean()
        for i, value in enumerate(dx[period:], start=1):
            adx[i] = (adx[i - 1] * (period - 1) + value) / period

        return {
            'adx': adx,
            'plus_di': plus_di[-len(adx):],
            'minus_di': minus_di[-len(adx):]
        }

    @staticmethod
    def volume_ratio(volume: ArrayLike, period: int = 20) -> np.ndarray:
        """Each bar's volume over the mean of the ``period`` bars before it."""
        _check_period('Volume ratio', period)
        volume = _as_array(volume)
        _require('Volume ratio', len(volume), period + 1)
        trailing = pd.Series(volume).rolling(window=period).mean().shift(1).to_numpy()[period:]
        current = volume[period:]
        with np.errstate(divide='ignore', invalid='ignore'):
            return np.where(trailing > 0, current / trailing, 0.0)


@dataclass
class IndicatorSet:
    """Indicators computed for one series, plus the ones that failed."""
    symbol: str
    results: Dict[str, IndicatorResult]
    errors: Dict[str, AnalyticsError] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self.results

    def __getitem__(self, name: str) -> IndicatorResult:
        return self.results[name]

    def get(self, name: str) -> Optional[IndicatorResult]:
        return self.results.get(name)

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'indicators': {name: r.to_dict() for name, r in self.results.items()},
            'unavailable': {name: e.to_dict() for name, e in self.errors.items()}
        }


class IndicatorEngine:
    """
    Computes the configured indicator set for a PriceSeries.

    Indicators whose lookback exceeds the series length are reported in
    ``IndicatorSet.errors`` instead of failing the whole computation.
    """

    def __init__(self, config=None):
        from ..config import IndicatorConfig
        self.config = config or IndicatorConfig()

    def compute_all(self, series) -> IndicatorSet:
        cfg = self.config
        ti = TechnicalIndicators
        closes = series.closes()
        highs = series.highs()
        lows = series.lows()
        volumes = series.volumes()

        builders = {
            'sma_fast': lambda: IndicatorResult(
                'sma_fast', ti.sma(closes, cfg.fast_ma_period), {'period': cfg.fast_ma_period}),
            'sma_slow': lambda: IndicatorResult(
                'sma_slow', ti.sma(closes, cfg.slow_ma_period), {'period': cfg.slow_ma_period}),
            'ema_fast': lambda: IndicatorResult(
                'ema_fast', ti.ema(closes, cfg.macd_fast, cfg.ema_smoothing), {'period': cfg.macd_fast}),
            'ema_slow': lambda: IndicatorResult(
                'ema_slow', ti.ema(closes, cfg.macd_slow, cfg.ema_smoothing), {'period': cfg.macd_slow}),
            'rsi': lambda: IndicatorResult('rsi', ti.rsi(closes, cfg.rsi_period), {'period': cfg.rsi_period}),
            'macd': lambda: self._macd(closes),
            'bollinger': lambda: self._bollinger(closes),
            'atr': lambda: IndicatorResult(
                'atr', ti.atr(highs, lows, closes, cfg.atr_period), {'period': cfg.atr_period}),
            'stochastic': lambda: self._stochastic(highs, lows, closes),
            'williams_r': lambda: IndicatorResult(
                'williams_r', ti.williams_r(highs, lows, closes, cfg.williams_period),
                {'period': cfg.williams_period}),
            'obv': lambda: IndicatorResult('obv', ti.obv(closes, volumes)),
            'vwap': lambda: IndicatorResult('vwap', ti.vwap(highs, lows, closes, volumes)),
            'adx': lambda: self._adx(highs, lows, closes),
            'volume_ratio': lambda: IndicatorResult(
                'volume_ratio', ti.volume_ratio(volumes, cfg.volume_ma_period),
                {'period': cfg.volume_ma_period}),
        }

        indicator_set = IndicatorSet(symbol=series.symbol, results={})
        for name, build in builders.items():
            try:
                indicator_set.results[name] = build()
            except AnalyticsError as e:
                indicator_set.errors[name] = e
                logger.debug(f"{series.symbol}: {name} unavailable ({e.message})")

        if indicator_set.errors:
            logger.info(f"{series.symbol}: {len(indicator_set.results)} indicators computed, "
                        f"{len(indicator_set.errors)} skipped")
        return indicator_set

    def _macd(self, closes: np.ndarray) -> IndicatorResult:
        cfg = self.config
        macd = TechnicalIndicators.macd(closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal, cfg.ema_smoothing)
        return IndicatorResult(
            'macd', macd['macd'],
            {'fast': cfg.macd_fast, 'slow': cfg.macd_slow, 'signal': cfg.macd_signal},
            {'signal': macd['signal'], 'histogram': macd['histogram']}
        )

    def _bollinger(self, closes: np.ndarray) -> IndicatorResult:
        cfg = self.config
        bands = TechnicalIndicators.bollinger_bands(closes, cfg.bollinger_period, cfg.bollinger_std)
        return IndicatorResult(
            'bollinger', bands['middle'],
            {'period': cfg.bollinger_period, 'std_dev': cfg.bollinger_std},
            {k: v for k, v in bands.items() if k != 'middle'}
        )

    def _stochastic(self, highs, lows, closes) -> IndicatorResult:
        cfg = self.config
        stoch = TechnicalIndicators.stochastic(highs, lows, closes, cfg.stochastic_period, cfg.stochastic_d_period)
        extra = {'d': stoch['d']} if 'd' in stoch else {}
        return IndicatorResult('stochastic', stoch['k'],
                               {'period': cfg.stochastic_period, 'd_period': cfg.stochastic_d_period}, extra)

    def _adx(self, highs, lows, closes) -> IndicatorResult:
        cfg = self.config
        adx = TechnicalIndicators.adx(highs, lows, closes, cfg.adx_period)
        return IndicatorResult('adx', adx['adx'], {'period': cfg.adx_period},
                               {'plus_di': adx['plus_di'], 'minus_di': adx['minus_di']})
