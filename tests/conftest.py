"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from quant_analytics.data import PriceSeries, MockMarketDataProvider


def make_series(symbol, closes, volumes=None):
    """Series from bare closes with a constant default volume."""
    closes = list(closes)
    if volumes is None:
        volumes = [1_000_000.0] * len(closes)
    return PriceSeries.from_closes(symbol, closes, volumes)


@pytest.fixture
def series_factory():
    return make_series


@pytest.fixture
def rising_series() -> PriceSeries:
    """120 strictly rising daily closes."""
    return make_series('UP', [100.0 + i for i in range(120)])


@pytest.fixture
def falling_series() -> PriceSeries:
    """120 strictly falling daily closes."""
    return make_series('DOWN', [300.0 - i for i in range(120)])


@pytest.fixture
def flat_series() -> PriceSeries:
    """Constant price series."""
    return make_series('FLAT', [50.0] * 80)


@pytest.fixture
def mock_provider() -> MockMarketDataProvider:
    return MockMarketDataProvider(seed=7)


@pytest.fixture
def universe(mock_provider):
    """Four synthetic one-year OHLCV series."""
    return {s: mock_provider.generate(s) for s in ['SPY', 'QQQ', 'TLT', 'GLD']}


@pytest.fixture
def random_walk() -> np.ndarray:
    """Deterministic positive random walk of 300 closes."""
    rng = np.random.default_rng(123)
    return 100 * np.cumprod(1 + rng.normal(0.0005, 0.01, 300))
