"""
Data Module
===========
"""
from .timeseries import PricePoint, PriceSeries, TimeSeriesStore
from .providers import (
    MarketDataProvider, YFinanceProvider, MockMarketDataProvider,
    LiveQuote, RegimeSnapshot, YieldCurve
)

__all__ = [
    'PricePoint', 'PriceSeries', 'TimeSeriesStore',
    'MarketDataProvider', 'YFinanceProvider', 'MockMarketDataProvider',
    'LiveQuote', 'RegimeSnapshot', 'YieldCurve'
]
