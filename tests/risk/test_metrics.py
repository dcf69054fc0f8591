"""Tests for risk and performance metrics"""

import numpy as np
import pytest

from quant_analytics.config import RiskConfig
from quant_analytics.errors import DegenerateInputError, InsufficientDataError, InvalidInputError
from quant_analytics.portfolio import Portfolio
from quant_analytics.risk import RiskLevel, RiskMetricsEngine, UNBOUNDED


@pytest.fixture
def engine():
    return RiskMetricsEngine()


class TestReturns:
    """Simple returns and annualization"""

    def test_returns_from_values(self, engine):
        assert engine.returns_from_values([100, 110, 99]) == pytest.approx([0.1, -0.1])

    def test_zero_value_is_degenerate(self, engine):
        with pytest.raises(DegenerateInputError):
            engine.returns_from_values([100, 0, 50])

    def test_single_value_is_insufficient(self, engine):
        with pytest.raises(InsufficientDataError):
            engine.returns_from_values([100])

    def test_total_return(self, engine):
        assert engine.total_return([100, 90, 125]) == pytest.approx(0.25)

    def test_annualized_return_is_arithmetic(self, engine):
        assert engine.annualized_return([0.01, -0.01, 0.03]) == pytest.approx(0.01 * 252)

    def test_volatility_uses_population_std(self, engine):
        returns = [0.01, -0.01]
        assert engine.volatility(returns) == pytest.approx(0.01 * np.sqrt(252))

    def test_empty_returns(self, engine):
        with pytest.raises(InsufficientDataError):
            engine.volatility([])


class TestTailRisk:
    """Historical, conditional and parametric VaR"""

    returns = np.arange(-50, 50) / 1000.0

    def test_historical_var(self, engine):
        assert engine.value_at_risk(self.returns, 0.95) == pytest.approx(0.045)

    def test_conditional_var(self, engine):
        assert engine.conditional_var(self.returns, 0.95) == pytest.approx(0.048)

    def test_full_confidence_is_worst_loss(self, engine):
        assert engine.value_at_risk([0.02, -0.10, 0.01, -0.03], 1.0) == pytest.approx(0.10)

    def test_empty_tail_has_zero_cvar(self, engine):
        assert engine.conditional_var([0.02, -0.10, 0.01], 0.95) == 0.0

    def test_invalid_confidence(self, engine):
        with pytest.raises(InvalidInputError):
            engine.value_at_risk(self.returns, 0.0)
        with pytest.raises(InvalidInputError):
            engine.value_at_risk(self.returns, 1.5)

    def test_var_grows_with_confidence(self, engine, random_walk):
        returns = engine.returns_from_values(random_walk)
        levels = [0.5, 0.8, 0.9, 0.95, 0.975, 0.99, 1.0]
        var = [engine.value_at_risk(returns, c) for c in levels]
        assert all(later >= earlier for earlier, later in zip(var, var[1:]))
        assert var[-1] == pytest.approx(-returns.min())

    def test_parametric_var(self, engine):
        returns = np.array([0.01, -0.01])
        assert engine.parametric_var(returns, 0.99) == pytest.approx(2.3263 * 0.01)


class TestRatios:
    """Sharpe, Sortino and Calmar edge cases"""

    def test_sharpe_zero_volatility(self, engine):
        assert engine.sharpe_ratio([0.0] * 10) == 0.0

    def test_sharpe(self, engine):
        returns = np.array([0.01, -0.005, 0.02, 0.0])
        expected = (returns.mean() * 252 - 0.02) / (returns.std() * np.sqrt(252))
        assert engine.sharpe_ratio(returns) == pytest.approx(expected)

    def test_sortino_unbounded_without_downside(self, engine, rising_series):
        returns = rising_series.returns()
        assert engine.sortino_ratio(returns) is UNBOUNDED

    def test_sortino_negative_on_losses(self, engine, falling_series):
        assert engine.sortino_ratio(falling_series.returns()) < 0

    def test_calmar_none_without_drawdown(self, engine, rising_series):
        assert engine.calmar_ratio(rising_series.closes()) is None

    def test_calmar(self, engine):
        values = [100, 120, 90, 95, 130, 80]
        expected = engine.annualized_return(engine.returns_from_values(values)) / (50 / 130)
        assert engine.calmar_ratio(values) == pytest.approx(expected)


class TestDrawdown:
    """Running-peak maximum drawdown"""

    def test_largest_decline(self, engine):
        drawdown = engine.max_drawdown([100, 120, 90, 95, 130, 80])
        assert drawdown.value == pytest.approx(50 / 130)
        assert drawdown.peak_index == 4
        assert drawdown.trough_index == 5
        assert drawdown.recovery_index is None
        assert drawdown.duration == 1

    def test_recovery(self, engine):
        drawdown = engine.max_drawdown([100, 80, 90, 105])
        assert drawdown.value == pytest.approx(0.2)
        assert drawdown.recovery_index == 3
        assert drawdown.duration == 3

    def test_monotonic_rise(self, engine, rising_series):
        assert engine.max_drawdown(rising_series.closes()).value == 0.0

    def test_bounded(self, engine, random_walk):
        assert 0 <= engine.max_drawdown(random_walk).value <= 1

    def test_empty(self, engine):
        with pytest.raises(InsufficientDataError):
            engine.max_drawdown([])


class TestMoments:
    """Population skewness and excess kurtosis"""

    def test_constant_returns(self, engine):
        assert engine.skewness([0.5] * 4) == 0.0
        assert engine.kurtosis([0.5] * 4) == 0.0

    def test_symmetric_returns(self, engine):
        returns = [-0.02, -0.01, 0.0, 0.01, 0.02]
        assert engine.skewness(returns) == pytest.approx(0.0)
        assert engine.kurtosis(returns) == pytest.approx(1.7 - 3)


class TestBenchmark:
    """Benchmark-relative statistics"""

    def test_identical_returns(self, engine, random_walk):
        returns = engine.returns_from_values(random_walk)
        stats = engine.benchmark_stats(returns, returns)
        assert stats.beta == pytest.approx(1.0)
        assert stats.correlation == pytest.approx(1.0)
        assert stats.alpha == pytest.approx(0.0, abs=1e-12)
        assert stats.tracking_error == pytest.approx(0.0, abs=1e-12)
        assert stats.information_ratio is None
        assert stats.up_capture == pytest.approx(1.0)

    def test_leveraged_returns(self, engine, random_walk):
        bench = engine.returns_from_values(random_walk)
        stats = engine.benchmark_stats(2 * bench, bench)
        assert stats.beta == pytest.approx(2.0)
        assert stats.down_capture == pytest.approx(2.0)

    def test_tail_alignment(self, engine):
        stats = engine.benchmark_stats([0.5, 0.01, 0.02, -0.01], [0.01, 0.02, -0.01])
        assert stats.observations == 3
        assert stats.beta == pytest.approx(1.0)

    def test_constant_benchmark(self, engine):
        stats = engine.benchmark_stats([0.01, 0.02, 0.03], [0.5, 0.5, 0.5])
        assert stats.beta == 0.0
        assert stats.treynor is None
        assert stats.correlation == 0.0

    def test_correlation_is_symmetric_and_bounded(self, engine):
        rng = np.random.default_rng(11)
        for _ in range(10):
            a, b = rng.normal(0.0, 0.01, 80), rng.normal(0.0, 0.02, 80)
            forward = engine.benchmark_stats(a, b).correlation
            assert forward == pytest.approx(engine.benchmark_stats(b, a).correlation, abs=1e-12)
            assert abs(forward) <= 1 + 1e-12

    def test_needs_overlap(self, engine):
        with pytest.raises(InsufficientDataError):
            engine.benchmark_stats([0.01], [0.01, 0.02])


class TestReports:
    """Full reports for series and portfolios"""

    def test_report(self, engine, random_walk):
        report = engine.report(random_walk, benchmark_values=random_walk)
        assert report.observations == len(random_walk) - 1
        assert report.benchmark is not None
        assert report.var >= 0
        assert report.cvar >= report.var
        data = report.to_dict()
        assert data['risk_level'] == report.risk_level.value
        assert data['benchmark']['beta'] == pytest.approx(1.0)

    def test_unbounded_sortino_serializes(self, engine, rising_series):
        data = engine.report(rising_series.closes()).to_dict()
        assert data['sortino'] == 'unbounded'
        assert data['calmar'] is None

    def test_risk_levels(self):
        assert RiskLevel.from_score(10) == RiskLevel.LOW
        assert RiskLevel.from_score(45) == RiskLevel.HIGH
        assert RiskLevel.from_score(99) == RiskLevel.EXTREME

    def test_portfolio_values(self, engine):
        values = engine.portfolio_values({'A': 0.5, 'B': 0.5}, {'A': [100, 110], 'B': [100, 90]})
        assert values == pytest.approx([1.0, 1.0])

    def test_portfolio_values_missing_prices(self, engine):
        with pytest.raises(InvalidInputError):
            engine.portfolio_values({'A': 1.0}, {'B': [1, 2]})

    def test_portfolio_report(self, engine, universe):
        price_map = {s: series.closes() for s, series in universe.items()}
        portfolio = Portfolio({'SPY': 0.4, 'QQQ': 0.3, 'TLT': 0.2, 'GLD': 0.1})
        report = engine.portfolio_report(portfolio, price_map, benchmark_values=price_map['SPY'])
        assert report.observations == 251
        assert report.volatility > 0


class TestSupplementaryTools:
    """Correlation risk and stop sizing"""

    def test_correlation_risk_of_identical_assets(self, engine, random_walk):
        risk = engine.correlation_risk({'A': random_walk, 'B': random_walk * 2})
        assert risk.max_correlation == pytest.approx(1.0)
        assert risk.risk_score == pytest.approx(3.0)
        assert len(risk.high_pairs) == 1

    def test_correlation_risk_single_asset(self, engine, random_walk):
        risk = engine.correlation_risk({'A': random_walk})
        assert risk.average_correlation == 0.0
        assert risk.diversification_benefit == 1.0

    def test_long_stop(self, engine):
        stops = engine.dynamic_stop_loss(100.0, atr=2.0, volatility=0.5)
        assert stops.stop_loss == pytest.approx(94.0)
        assert stops.profit_target == pytest.approx(118.0)
        assert stops.reward_risk_ratio == 3.0

    def test_short_stop(self, engine):
        stops = engine.dynamic_stop_loss(100.0, atr=2.0, volatility=0.5, direction='short')
        assert stops.stop_loss == pytest.approx(106.0)
        assert stops.profit_target == pytest.approx(82.0)

    def test_stop_direction(self, engine):
        with pytest.raises(InvalidInputError):
            engine.dynamic_stop_loss(100.0, 2.0, 0.5, direction='sideways')

    def test_configured_multiplier(self):
        engine = RiskMetricsEngine(RiskConfig(atr_stop_multiplier=1.0, reward_risk_ratio=2.0))
        stops = engine.dynamic_stop_loss(50.0, atr=1.0, volatility=0.0)
        assert stops.stop_loss == pytest.approx(49.0)
        assert stops.profit_target == pytest.approx(52.0)


class TestPositionSizing:
    """Fixed-fractional sizing with volatility scaling"""

    def test_wide_stop_is_uncapped(self, engine):
        size = engine.position_size(100_000, entry=100.0, stop_loss=50.0)
        assert size.units == pytest.approx(40.0)
        assert size.position_value == pytest.approx(4_000.0)
        assert size.risk_pct == pytest.approx(2.0)
        assert not size.capped

    def test_tight_stop_is_capped(self, engine):
        # 2000 at risk over a 5 point stop wants 400 units; 10% of capital buys 100
        size = engine.position_size(100_000, entry=100.0, stop_loss=95.0)
        assert size.capped
        assert size.units == pytest.approx(100.0)
        assert size.risk_amount == pytest.approx(500.0)
        assert size.risk_pct == pytest.approx(0.5)

    @pytest.mark.parametrize('volatility,adjustment', [
        (0.30, 0.5),
        (0.15, 1.0),
        (0.05, 2.0),
        (0.0, 1.0),
    ])
    def test_volatility_adjustment(self, engine, volatility, adjustment):
        size = engine.position_size(100_000, 100.0, 50.0, volatility=volatility)
        assert size.volatility_adjustment == pytest.approx(adjustment)
        assert size.units == pytest.approx(40.0 * adjustment)

    def test_short_stop_above_entry(self, engine):
        size = engine.position_size(100_000, entry=100.0, stop_loss=150.0)
        assert size.units == pytest.approx(40.0)

    def test_stop_at_entry(self, engine):
        with pytest.raises(DegenerateInputError):
            engine.position_size(100_000, 100.0, 100.0)

    @pytest.mark.parametrize('capital,entry', [(0, 100.0), (100_000, 0.0), (-5, 10.0)])
    def test_invalid_inputs(self, engine, capital, entry):
        with pytest.raises(InvalidInputError):
            engine.position_size(capital, entry, 1.0)

    def test_to_dict(self, engine):
        data = engine.position_size(100_000, 100.0, 50.0).to_dict()
        assert data['units'] == pytest.approx(40.0)
        assert data['capped'] is False
