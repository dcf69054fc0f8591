"""
Market Data Providers
=====================
Narrow async interface to external market data plus two implementations:
Yahoo Finance (via yfinance) and a seeded synthetic source for tests and
offline runs.

yfinance is synchronous, so its calls are pushed onto a small thread pool
and awaited; the caller applies timeouts.
"""

import pandas as pd
import numpy as np
import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional, Set
import logging

from .timeseries import PriceSeries
from ..errors import ExternalUnavailableError

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="market-data")


@dataclass
class LiveQuote:
    """Latest traded price for one symbol."""
    symbol: str
    price: float
    timestamp: datetime
    change_pct: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'price': self.price,
            'timestamp': self.timestamp.isoformat(),
            'change_pct': self.change_pct
        }


@dataclass
class RegimeSnapshot:
    """Macro growth / inflation direction readings."""
    growth_accelerating: bool
    inflation_rising: bool
    growth_strength: float = 0.0      # 0-100
    inflation_strength: float = 0.0   # 0-100
    as_of: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'growth_accelerating': self.growth_accelerating,
            'inflation_rising': self.inflation_rising,
            'growth_strength': self.growth_strength,
            'inflation_strength': self.inflation_strength,
            'as_of': self.as_of.isoformat() if self.as_of else None
        }


@dataclass
class YieldCurve:
    """Treasury yields in percent keyed by tenor ('3M', '2Y', '10Y', ...)."""
    rates: Dict[str, float]
    as_of: Optional[datetime] = None

    @property
    def spreads(self) -> Dict[str, float]:
        spreads = {}
        pairs = {'2s10s': ('2Y', '10Y'), '3m10y': ('3M', '10Y'), '5s30s': ('5Y', '30Y')}
        for name, (short, long) in pairs.items():
            if short in self.rates and long in self.rates:
                spreads[name] = self.rates[long] - self.rates[short]
        return spreads

    @property
    def key_spread(self) -> Optional[float]:
        """2s10s when available, otherwise 3m10y."""
        spreads = self.spreads
        return spreads.get('2s10s', spreads.get('3m10y'))

    @property
    def shape(self) -> str:
        spread = self.key_spread
        if spread is None:
            return 'UNKNOWN'
        if spread < -0.5:
            return 'DEEPLY_INVERTED'
        if spread < 0:
            return 'INVERTED'
        if spread > 2.5:
            return 'STEEP'
        return 'NORMAL'

    @property
    def recession_probability(self) -> Optional[float]:
        spread = self.key_spread
        if spread is None:
            return None
        return min(80.0, abs(spread) * 100) if spread < 0 else 10.0

    def to_dict(self) -> dict:
        return {
            'rates': dict(self.rates),
            'spreads': self.spreads,
            'shape': self.shape,
            'recession_probability': self.recession_probability,
            'as_of': self.as_of.isoformat() if self.as_of else None
        }


class MarketDataProvider(ABC):
    """Abstract base class for market data collaborators."""

    @abstractmethod
    async def fetch_history(self, symbol: str, period: str = "1y", interval: str = "1d") -> PriceSeries:
        """Fetch historical OHLCV bars."""
        pass

    @abstractmethod
    async def fetch_live_price(self, symbol: str) -> LiveQuote:
        """Fetch the latest price."""
        pass

    @abstractmethod
    async def fetch_regime(self) -> RegimeSnapshot:
        """Fetch macro growth / inflation readings."""
        pass

    @abstractmethod
    async def fetch_yield_curve(self) -> YieldCurve:
        """Fetch the treasury curve."""
        pass


async def _run_sync(func, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, func, *args)


class YFinanceProvider(MarketDataProvider):
    """Yahoo Finance market data."""

    # CBOE treasury yield indices, quoted in percent (no 2Y on Yahoo)
    CURVE_TICKERS = {'3M': '^IRX', '5Y': '^FVX', '10Y': '^TNX', '30Y': '^TYX'}

    def __init__(self):
        import yfinance as yf
        self.yf = yf

    def _history_sync(self, symbol: str, period: str, interval: str) -> PriceSeries:
        df = self.yf.Ticker(symbol).history(period=period, interval=interval)
        if df is None or df.empty:
            raise ExternalUnavailableError(f"No history returned for {symbol}")
        if getattr(df.index, 'tz', None) is not None:
            df.index = df.index.tz_localize(None)
        return PriceSeries.from_dataframe(symbol, df)

    def _quote_sync(self, symbol: str) -> LiveQuote:
        df = self.yf.Ticker(symbol).history(period="5d", interval="1d")
        if df is None or df.empty:
            raise ExternalUnavailableError(f"No quote returned for {symbol}")
        closes = df['Close'].dropna()
        price = float(closes.iloc[-1])
        change = None
        if len(closes) > 1 and closes.iloc[-2] != 0:
            change = (price / float(closes.iloc[-2]) - 1) * 100
        return LiveQuote(symbol=symbol, price=price, timestamp=datetime.now(), change_pct=change)

    def _curve_sync(self) -> YieldCurve:
        rates = {}
        for tenor, ticker in self.CURVE_TICKERS.items():
            try:
                df = self.yf.Ticker(ticker).history(period="5d")
            except Exception as e:
                logger.warning(f"Yield fetch failed for {ticker}: {e}")
                continue
            if df is not None and not df.empty:
                rates[tenor] = float(df['Close'].dropna().iloc[-1])
        if not rates:
            raise ExternalUnavailableError("No treasury yields returned")
        return YieldCurve(rates=rates, as_of=datetime.now())

    async def fetch_history(self, symbol: str, period: str = "1y", interval: str = "1d") -> PriceSeries:
        return await _run_sync(self._history_sync, symbol, period, interval)

    async def fetch_live_price(self, symbol: str) -> LiveQuote:
        return await _run_sync(self._quote_sync, symbol)

    async def fetch_regime(self) -> RegimeSnapshot:
        raise ExternalUnavailableError("Yahoo Finance does not publish macro growth/inflation readings")

    async def fetch_yield_curve(self) -> YieldCurve:
        return await _run_sync(self._curve_sync)


class MockMarketDataProvider(MarketDataProvider):
    """
    Deterministic synthetic data source.

    ``delays`` (seconds per source name) and ``failures`` (source names)
    simulate slow or broken collaborators; source names are ``history``,
    ``live_price``, ``regime`` and ``yield_curve``.
    """

    def __init__(self, seed: int = 42, volatility: float = 0.02,
                 regime: Optional[RegimeSnapshot] = None,
                 delays: Optional[Dict[str, float]] = None,
                 failures: Optional[Iterable[str]] = None):
        self.seed = seed
        self.volatility = volatility
        self.regime = regime or RegimeSnapshot(True, False, 60.0, 40.0)
        self.delays = dict(delays or {})
        self.failures: Set[str] = set(failures or ())
        self.base_prices = {'SPY': 450.0, 'QQQ': 380.0, 'TLT': 95.0, 'GLD': 185.0}

    async def _simulate(self, source: str):
        delay = self.delays.get(source, 0)
        if delay:
            await asyncio.sleep(delay)
        if source in self.failures:
            raise ExternalUnavailableError(f"Mock {source} failure")

    def _rng(self, symbol: str) -> np.random.Generator:
        return np.random.default_rng(self.seed + sum(ord(c) for c in symbol))

    def generate(self, symbol: str, bars: int = 252, start: str = '2024-01-01') -> PriceSeries:
        """Random-walk OHLCV series, reproducible per (seed, symbol)."""
        rng = self._rng(symbol)
        dates = pd.bdate_range(start=start, periods=bars)
        base = self.base_prices.get(symbol, 100.0)
        closes = base * np.cumprod(1 + rng.normal(0.0005, self.volatility, bars))
        spread = np.abs(rng.normal(0, self.volatility, bars)) * closes
        highs = closes + spread
        lows = closes - spread
        opens = lows + rng.random(bars) * (highs - lows)
        volumes = np.maximum(rng.normal(1_000_000, 200_000, bars), 100_000).round()

        df = pd.DataFrame({
            'open': opens.round(2),
            'high': highs.round(2),
            'low': lows.round(2),
            'close': closes.round(2),
            'volume': volumes
        }, index=dates)
        df['high'] = df[['open', 'high', 'low', 'close']].max(axis=1)
        df['low'] = df[['open', 'high', 'low', 'close']].min(axis=1)
        return PriceSeries.from_dataframe(symbol, df)

    async def fetch_history(self, symbol: str, period: str = "1y", interval: str = "1d") -> PriceSeries:
        await self._simulate('history')
        return self.generate(symbol)

    async def fetch_live_price(self, symbol: str) -> LiveQuote:
        await self._simulate('live_price')
        series = self.generate(symbol)
        closes = series.closes()
        return LiveQuote(
            symbol=symbol,
            price=float(closes[-1]),
            timestamp=series.last.timestamp,
            change_pct=float((closes[-1] / closes[-2] - 1) * 100)
        )

    async def fetch_regime(self) -> RegimeSnapshot:
        await self._simulate('regime')
        return self.regime

    async def fetch_yield_curve(self) -> YieldCurve:
        await self._simulate('yield_curve')
        return YieldCurve(rates={'3M': 5.0, '2Y': 4.7, '5Y': 4.5, '10Y': 4.4, '30Y': 4.6})
