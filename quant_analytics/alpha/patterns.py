"""
Chart Pattern Detection
=======================
Support/resistance levels, reversal patterns and divergences over numpy
price arrays.

Each detector answers "is the pattern confirmed as of the last bar?".
Turning that into a one-off signal is the detector state machine's job.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .signals import Direction


@dataclass(frozen=True)
class PriceLevel:
    """Clustered support or resistance level."""
    price: float
    touches: int
    kind: str  # 'support' or 'resistance'

    @property
    def strength(self) -> float:
        return float(min(95, 50 + 10 * self.touches))

    def distance(self, price: float) -> float:
        """Relative distance of ``price`` from the level."""
        return abs(price - self.price) / self.price if self.price else float('inf')


@dataclass(frozen=True)
class PatternMatch:
    """A confirmed chart pattern."""
    name: str
    direction: Direction
    details: Dict[str, float] = field(default_factory=dict)


def find_extrema(values: np.ndarray, order: int = 2, kind: str = 'max') -> List[int]:
    """
    Indices of local maxima (or minima) within +/- ``order`` bars.

    On a plateau only the first bar counts. The last ``order`` bars are
    never extrema because their right-hand window is incomplete.
    """
    values = np.asarray(values, dtype=float)
    indices = []
    for i in range(order, len(values) - order):
        window = values[i - order:i + order + 1]
        left = values[i - order:i]
        if kind == 'max':
            if values[i] == window.max() and values[i] > left.max():
                indices.append(i)
        else:
            if values[i] == window.min() and values[i] < left.min():
                indices.append(i)
    return indices


def cluster_levels(prices: List[float], cluster_pct: float, kind: str) -> List[PriceLevel]:
    """Group nearby prices; each group becomes one level at its mean."""
    groups: List[List[float]] = []
    for price in sorted(prices):
        if groups and abs(price - groups[-1][0]) / groups[-1][0] <= cluster_pct:
            groups[-1].append(price)
        else:
            groups.append([price])
    return [PriceLevel(float(np.mean(g)), len(g), kind) for g in groups]


def find_support_resistance(highs: np.ndarray, lows: np.ndarray, lookback: int = 50,
                            cluster_pct: float = 0.01, order: int = 2) -> Tuple[List[PriceLevel], List[PriceLevel]]:
    """Support levels from swing lows, resistance levels from swing highs."""
    highs = np.asarray(highs, dtype=float)[-lookback:]
    lows = np.asarray(lows, dtype=float)[-lookback:]
    supports = cluster_levels([lows[i] for i in find_extrema(lows, order, 'min')], cluster_pct, 'support')
    resistances = cluster_levels([highs[i] for i in find_extrema(highs, order, 'max')], cluster_pct, 'resistance')
    return supports, resistances


def detect_double_top(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray,
                      tolerance: float = 0.03, min_separation: int = 5,
                      order: int = 2) -> Optional[PatternMatch]:
    """Two similar peaks with a trough between, confirmed by a close below the trough."""
    peaks = find_extrema(highs, order, 'max')
    if len(peaks) < 2:
        return None
    first, second = peaks[-2], peaks[-1]
    if second - first < min_separation:
        return None

    h1, h2 = highs[first], highs[second]
    if abs(h1 - h2) / max(h1, h2) > tolerance:
        return None
    neckline = float(np.min(lows[first:second + 1]))
    lower_peak = min(h1, h2)
    if (lower_peak - neckline) / lower_peak < tolerance:
        return None
    if closes[-1] >= neckline:
        return None
    return PatternMatch('double_top', Direction.BEARISH,
                        {'first_peak': float(h1), 'second_peak': float(h2), 'neckline': neckline})


def detect_double_bottom(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray,
                         tolerance: float = 0.03, min_separation: int = 5,
                         order: int = 2) -> Optional[PatternMatch]:
    """Two similar troughs with a peak between, confirmed by a close above the peak."""
    troughs = find_extrema(lows, order, 'min')
    if len(troughs) < 2:
        return None
    first, second = troughs[-2], troughs[-1]
    if second - first < min_separation:
        return None

    l1, l2 = lows[first], lows[second]
    if abs(l1 - l2) / min(l1, l2) > tolerance:
        return None
    neckline = float(np.max(highs[first:second + 1]))
    higher_trough = max(l1, l2)
    if (neckline - higher_trough) / higher_trough < tolerance:
        return None
    if closes[-1] <= neckline:
        return None
    return PatternMatch('double_bottom', Direction.BULLISH,
                        {'first_trough': float(l1), 'second_trough': float(l2), 'neckline': neckline})


def detect_head_and_shoulders(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray,
                              tolerance: float = 0.03, order: int = 2) -> Optional[PatternMatch]:
    """
    Head-and-shoulders top (bearish) or inverse (bullish).

    The head must clear both shoulders by more than ``tolerance``, the
    shoulders must match within ``tolerance``, and the close must break the
    neckline drawn through the opposite extremes between the shoulders.
    """
    peaks = find_extrema(highs, order, 'max')
    if len(peaks) >= 3:
        a, b, c = peaks[-3:]
        left, head, right = highs[a], highs[b], highs[c]
        if head > max(left, right) * (1 + tolerance) and abs(left - right) / max(left, right) <= tolerance:
            neckline = float(np.min(lows[a:c + 1]))
            if closes[-1] < neckline:
                return PatternMatch('head_and_shoulders', Direction.BEARISH,
                                    {'head': float(head), 'neckline': neckline})

    troughs = find_extrema(lows, order, 'min')
    if len(troughs) >= 3:
        a, b, c = troughs[-3:]
        left, head, right = lows[a], lows[b], lows[c]
        if head < min(left, right) * (1 - tolerance) and abs(left - right) / min(left, right) <= tolerance:
            neckline = float(np.max(highs[a:c + 1]))
            if closes[-1] > neckline:
                return PatternMatch('inverse_head_and_shoulders', Direction.BULLISH,
                                    {'head': float(head), 'neckline': neckline})
    return None


def detect_triangle_breakout(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray,
                             lookback: int = 20, flat_tolerance: float = 0.001) -> Optional[PatternMatch]:
    """
    Close beyond a converging high/low trendline pair.

    Trendlines are least-squares fits over the ``lookback`` bars before the
    current one, projected to the current bar. A slope within
    ``flat_tolerance`` of the mean price per bar counts as flat.
    """
    if len(closes) < lookback + 1:
        return None
    window_highs = np.asarray(highs[-lookback - 1:-1], dtype=float)
    window_lows = np.asarray(lows[-lookback - 1:-1], dtype=float)
    x = np.arange(lookback)
    high_slope, high_intercept = np.polyfit(x, window_highs, 1)
    low_slope, low_intercept = np.polyfit(x, window_lows, 1)

    flat = flat_tolerance * float(np.mean(closes[-lookback - 1:-1]))
    falling_highs = high_slope < -flat
    rising_lows = low_slope > flat
    if not (falling_highs or rising_lows):
        return None
    if high_slope > flat or low_slope < -flat:
        return None

    if falling_highs and rising_lows:
        shape = 'symmetrical'
    elif rising_lows:
        shape = 'ascending'
    else:
        shape = 'descending'

    upper = high_intercept + high_slope * lookback
    lower = low_intercept + low_slope * lookback
    close = closes[-1]
    details = {'upper': float(upper), 'lower': float(lower)}
    if close > upper:
        return PatternMatch(f'{shape}_triangle', Direction.BULLISH, details)
    if close < lower:
        return PatternMatch(f'{shape}_triangle', Direction.BEARISH, details)
    return None


def detect_rsi_divergence(closes: np.ndarray, rsi: np.ndarray, lookback: int = 14) -> Optional[Direction]:
    """
    Compare the last ``lookback`` bars with the ``lookback`` before them.

    Lower price low with a higher RSI low is bullish; higher price high
    with a lower RSI high is bearish.
    """
    rsi = np.asarray(rsi, dtype=float)
    if len(rsi) < 2 * lookback:
        return None
    price = np.asarray(closes, dtype=float)[-len(rsi):]
    current_price, prior_price = price[-lookback:], price[-2 * lookback:-lookback]
    current_rsi, prior_rsi = rsi[-lookback:], rsi[-2 * lookback:-lookback]

    if current_price.min() < prior_price.min() and current_rsi.min() > prior_rsi.min():
        return Direction.BULLISH
    if current_price.max() > prior_price.max() and current_rsi.max() < prior_rsi.max():
        return Direction.BEARISH
    return None


def detect_price_volume_divergence(closes: np.ndarray, volumes: np.ndarray,
                                   lookback: int = 10) -> Optional[Direction]:
    """New price extreme on a falling volume trend."""
    closes = np.asarray(closes, dtype=float)
    volumes = np.asarray(volumes, dtype=float)
    if len(closes) < lookback + 1:
        return None
    recent = volumes[-lookback:]
    slope = np.polyfit(np.arange(lookback), recent, 1)[0]
    # Ignore fit noise on flat volume
    if slope >= -1e-9 * max(1.0, float(np.abs(recent).mean())):
        return None
    prior = closes[-lookback - 1:-1]
    if closes[-1] > prior.max():
        return Direction.BEARISH
    if closes[-1] < prior.min():
        return Direction.BULLISH
    return None
