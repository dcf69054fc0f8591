"""
Time Series Module
==================
Ordered OHLCV containers that feed every analytics stage.

Timestamps are strictly increasing; an out-of-order or duplicate bar is
rejected rather than silently re-sorted.
"""

import pandas as pd
import numpy as np
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union
import logging

from ..errors import InvalidInputError

logger = logging.getLogger(__name__)

Timestamp = Union[datetime, pd.Timestamp]


@dataclass(frozen=True)
class PricePoint:
    """One OHLCV bar."""
    timestamp: Timestamp
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict:
        return {
            'timestamp': self.timestamp,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume
        }


def _check_order(previous: Optional[PricePoint], point: PricePoint, symbol: str):
    if previous is not None and not point.timestamp > previous.timestamp:
        raise InvalidInputError(
            f"{symbol}: timestamp {point.timestamp} is not after {previous.timestamp}",
            details={'symbol': symbol}
        )


class PriceSeries:
    """
    Append-only OHLCV series for one symbol.

    Column accessors return fresh numpy arrays, so callers can never mutate
    the stored bars.
    """

    COLUMNS = ['open', 'high', 'low', 'close', 'volume']

    def __init__(self, symbol: str, points: Optional[Iterable[PricePoint]] = None):
        self.symbol = symbol
        self._points: List[PricePoint] = []
        for point in points or []:
            self.append(point)

    def append(self, point: PricePoint):
        """Append a bar; its timestamp must be after the last one."""
        _check_order(self._points[-1] if self._points else None, point, self.symbol)
        self._points.append(point)

    def extend(self, points: Iterable[PricePoint]):
        for point in points:
            self.append(point)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self):
        return iter(self._points)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return PriceSeries._trusted(self.symbol, self._points[index])
        return self._points[index]

    @classmethod
    def _trusted(cls, symbol: str, points: List[PricePoint]) -> 'PriceSeries':
        # Slices of an ordered series are already ordered
        series = cls(symbol)
        series._points = list(points)
        return series

    @property
    def points(self) -> List[PricePoint]:
        return list(self._points)

    @property
    def last(self) -> Optional[PricePoint]:
        return self._points[-1] if self._points else None

    def timestamps(self) -> List[Timestamp]:
        return [p.timestamp for p in self._points]

    def opens(self) -> np.ndarray:
        return np.array([p.open for p in self._points], dtype=float)

    def highs(self) -> np.ndarray:
        return np.array([p.high for p in self._points], dtype=float)

    def lows(self) -> np.ndarray:
        return np.array([p.low for p in self._points], dtype=float)

    def closes(self) -> np.ndarray:
        return np.array([p.close for p in self._points], dtype=float)

    def volumes(self) -> np.ndarray:
        return np.array([p.volume for p in self._points], dtype=float)

    def returns(self) -> np.ndarray:
        """Simple period-over-period close returns (length n - 1)."""
        closes = self.closes()
        if len(closes) < 2:
            return np.array([], dtype=float)
        return closes[1:] / closes[:-1] - 1

    def head(self, n: int) -> 'PriceSeries':
        return self[:n]

    def tail(self, n: int) -> 'PriceSeries':
        return self[-n:] if n > 0 else PriceSeries(self.symbol)

    def to_dataframe(self) -> pd.DataFrame:
        """OHLCV frame indexed by timestamp."""
        if not self._points:
            return pd.DataFrame(columns=self.COLUMNS)
        df = pd.DataFrame(
            [[p.open, p.high, p.low, p.close, p.volume] for p in self._points],
            columns=self.COLUMNS,
            index=pd.DatetimeIndex([p.timestamp for p in self._points], name='timestamp')
        )
        return df

    @classmethod
    def from_dataframe(cls, symbol: str, df: pd.DataFrame) -> 'PriceSeries':
        """
        Build a series from an OHLCV frame.

        Accepts either lowercase or yfinance-style capitalized columns and a
        DatetimeIndex (or a ``timestamp`` column). Rows are sorted and
        duplicate timestamps dropped, keeping the last.
        """
        df = df.rename(columns={
            'Open': 'open',
            'High': 'high',
            'Low': 'low',
            'Close': 'close',
            'Volume': 'volume'
        })
        if 'timestamp' in df.columns:
            df = df.set_index('timestamp')
        missing = [c for c in ['close'] if c not in df.columns]
        if missing:
            raise InvalidInputError(f"{symbol}: frame lacks columns {missing}")

        df = df[~df.index.duplicated(keep='last')].sort_index()
        df = df.dropna(subset=['close'])
        if 'volume' not in df.columns:
            df = df.assign(volume=0.0)
        for column in ['open', 'high', 'low']:
            if column not in df.columns:
                df = df.assign(**{column: df['close']})

        points = [
            PricePoint(
                timestamp=pd.Timestamp(ts),
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume)
            )
            for ts, row in zip(df.index, df.itertuples(index=False))
        ]
        return cls(symbol, points)

    @classmethod
    def from_closes(cls, symbol: str, closes: Iterable[float],
                    volumes: Optional[Iterable[float]] = None,
                    start: str = '2024-01-01', freq: str = 'D') -> 'PriceSeries':
        """Build a series from bare closes (high = low = open = close)."""
        closes = [float(c) for c in closes]
        volumes = [float(v) for v in volumes] if volumes is not None else [0.0] * len(closes)
        if len(volumes) != len(closes):
            raise InvalidInputError(f"{symbol}: {len(closes)} closes but {len(volumes)} volumes")
        dates = pd.date_range(start=start, periods=len(closes), freq=freq)
        return cls(symbol, [
            PricePoint(ts, c, c, c, c, v) for ts, c, v in zip(dates, closes, volumes)
        ])

    def __repr__(self) -> str:
        return f"PriceSeries({self.symbol!r}, {len(self)} bars)"


class TimeSeriesStore:
    """
    Bounded per-symbol bar buffers.

    Each symbol keeps at most ``max_length`` bars; older bars fall off the
    front. ``series()`` returns an independent snapshot.
    """

    def __init__(self, max_length: int = 1000):
        if max_length < 1:
            raise InvalidInputError("max_length must be positive")
        self.max_length = max_length
        self._buffers: Dict[str, deque] = {}

    def append(self, symbol: str, point: PricePoint):
        buffer = self._buffers.setdefault(symbol, deque(maxlen=self.max_length))
        _check_order(buffer[-1] if buffer else None, point, symbol)
        buffer.append(point)

    def load(self, series: PriceSeries):
        """Append every bar of a series."""
        for point in series:
            self.append(series.symbol, point)
        logger.debug(f"Loaded {len(series)} bars for {series.symbol}")

    def load_dataframe(self, symbol: str, df: pd.DataFrame):
        self.load(PriceSeries.from_dataframe(symbol, df))

    def series(self, symbol: str) -> PriceSeries:
        return PriceSeries._trusted(symbol, list(self._buffers.get(symbol, ())))

    def symbols(self) -> List[str]:
        return list(self._buffers.keys())

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._buffers

    def __len__(self) -> int:
        return len(self._buffers)

    def clear(self, symbol: Optional[str] = None):
        if symbol is None:
            self._buffers.clear()
        else:
            self._buffers.pop(symbol, None)
