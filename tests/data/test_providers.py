"""Tests for market data providers"""

import asyncio

import pytest

from quant_analytics.data import MockMarketDataProvider, YieldCurve, RegimeSnapshot
from quant_analytics.errors import ExternalUnavailableError


class TestMockProvider:
    """Deterministic synthetic data"""

    def test_generate_is_reproducible(self):
        a = MockMarketDataProvider(seed=1).generate('SPY', bars=50)
        b = MockMarketDataProvider(seed=1).generate('SPY', bars=50)
        assert list(a.closes()) == list(b.closes())
        assert len(a) == 50

    def test_ohlc_consistency(self, mock_provider):
        series = mock_provider.generate('QQQ')
        assert (series.highs() >= series.closes()).all()
        assert (series.lows() <= series.closes()).all()
        assert (series.volumes() > 0).all()

    def test_fetch_history(self, mock_provider):
        series = asyncio.run(mock_provider.fetch_history('TLT'))
        assert series.symbol == 'TLT'
        assert len(series) == 252

    def test_live_price_matches_last_close(self, mock_provider):
        quote = asyncio.run(mock_provider.fetch_live_price('SPY'))
        assert quote.price == pytest.approx(mock_provider.generate('SPY').closes()[-1])

    def test_configured_failure(self):
        provider = MockMarketDataProvider(failures=['regime'])
        with pytest.raises(ExternalUnavailableError):
            asyncio.run(provider.fetch_regime())

    def test_default_regime(self, mock_provider):
        regime = asyncio.run(mock_provider.fetch_regime())
        assert isinstance(regime, RegimeSnapshot)
        assert regime.growth_accelerating is True
        assert regime.inflation_rising is False


class TestYieldCurve:
    """Curve spreads and shape"""

    def test_mock_curve_is_inverted(self, mock_provider):
        curve = asyncio.run(mock_provider.fetch_yield_curve())
        assert curve.key_spread == pytest.approx(-0.3)
        assert curve.shape == 'INVERTED'
        assert curve.recession_probability == pytest.approx(30.0)

    def test_falls_back_to_3m10y(self):
        curve = YieldCurve(rates={'3M': 1.0, '10Y': 4.0})
        assert curve.key_spread == pytest.approx(3.0)
        assert curve.shape == 'STEEP'
        assert curve.recession_probability == 10.0

    def test_unknown_without_tenors(self):
        curve = YieldCurve(rates={'30Y': 4.0})
        assert curve.shape == 'UNKNOWN'
        assert curve.recession_probability is None

    def test_deeply_inverted(self):
        assert YieldCurve(rates={'2Y': 5.0, '10Y': 4.0}).shape == 'DEEPLY_INVERTED'
