"""Tests for portfolio weight optimization and rebalancing"""

import numpy as np
import pytest

from quant_analytics.config import OptimizerConfig
from quant_analytics.errors import InvalidInputError, InvariantViolationError
from quant_analytics.portfolio import CovarianceMatrix, PortfolioOptimizer


@pytest.fixture
def covariance():
    return CovarianceMatrix(['A', 'B', 'C'], np.diag([0.04, 0.01, 0.09]))


# A scores far above the cap; B and C score below zero
SKEWED_RETURNS = {'A': 3.0, 'B': -0.3, 'C': -0.6}


class TestAllocationMethods:
    """Heuristic allocations always sum to one"""

    def test_risk_parity(self, covariance):
        result = PortfolioOptimizer().risk_parity(covariance)
        total = 5 + 10 + 10 / 3
        assert result.weights['A'] == pytest.approx(5 / total)
        assert result.weights['B'] == pytest.approx(10 / total)
        assert sum(result.weights.values()) == pytest.approx(1.0)
        assert result.expected_return is None
        assert result.sharpe is None

    def test_minimum_variance(self, covariance):
        result = PortfolioOptimizer().minimum_variance(covariance)
        total = 25 + 100 + 100 / 9
        assert result.weights['B'] == pytest.approx(100 / total)
        assert result.volatility == pytest.approx(np.sqrt(covariance.portfolio_variance(result.weights)))

    def test_zero_variance_takes_everything(self):
        covariance = CovarianceMatrix(['CASH', 'SPY'], np.diag([0.0, 0.04]))
        result = PortfolioOptimizer().minimum_variance(covariance)
        assert result.weights == {'CASH': 1.0, 'SPY': 0.0}
        assert result.volatility == 0.0

    def test_mean_variance_tilt(self, covariance):
        result = PortfolioOptimizer().mean_variance({'A': 0.1, 'B': 0.05, 'C': 0.3}, covariance)
        # raw scores 1.5, 1.5, 2.0 (times 1/3)
        assert result.weights == pytest.approx({'A': 0.3, 'B': 0.3, 'C': 0.4})
        assert result.bound_violations == {}
        assert result.expected_return == pytest.approx(0.03 + 0.015 + 0.12)
        assert result.sharpe == pytest.approx((result.expected_return - 0.02) / result.volatility)

    def test_mean_variance_subset_of_covariance(self, covariance):
        result = PortfolioOptimizer().mean_variance({'A': 0.1, 'B': 0.1}, covariance)
        assert set(result.weights) == {'A', 'B'}
        assert sum(result.weights.values()) == pytest.approx(1.0)

    def test_dispatch(self, covariance):
        optimizer = PortfolioOptimizer()
        assert optimizer.optimize('risk_parity', covariance).method == 'risk_parity'
        with pytest.raises(InvalidInputError):
            optimizer.optimize('mean_variance', covariance)
        with pytest.raises(InvalidInputError):
            optimizer.optimize('black_litterman', covariance)

    def test_missing_covariance_entry(self, covariance):
        with pytest.raises(InvalidInputError):
            PortfolioOptimizer().mean_variance({'A': 0.1, 'Z': 0.1}, covariance)

    def test_weights_off_one_raise(self, covariance):
        with pytest.raises(InvariantViolationError):
            PortfolioOptimizer()._finalize('risk_parity', {'A': 0.5, 'B': 0.4}, covariance, None)


class TestWeightBounds:
    """Renormalization versus iterative bound enforcement"""

    def test_renormalization_can_breach_bounds(self, covariance):
        result = PortfolioOptimizer().mean_variance(SKEWED_RETURNS, covariance, max_weight=0.4)
        assert result.weights['A'] == pytest.approx(1.0)
        assert result.bound_violations == pytest.approx({'A': 1.0})
        assert sum(result.weights.values()) == pytest.approx(1.0)

    def test_enforced_bounds(self, covariance):
        optimizer = PortfolioOptimizer(OptimizerConfig(max_weight=0.4, enforce_bounds=True))
        result = optimizer.mean_variance(SKEWED_RETURNS, covariance)
        assert result.weights == pytest.approx({'A': 0.4, 'B': 0.3, 'C': 0.3})
        assert result.bound_violations == {}

    def test_infeasible_bounds(self, covariance):
        optimizer = PortfolioOptimizer(OptimizerConfig(max_weight=0.3, enforce_bounds=True))
        with pytest.raises(InvalidInputError):
            optimizer.mean_variance(SKEWED_RETURNS, covariance)

    def test_inverted_bounds(self, covariance):
        with pytest.raises(InvalidInputError):
            PortfolioOptimizer().mean_variance(SKEWED_RETURNS, covariance, min_weight=0.5, max_weight=0.1)


class TestRebalance:
    """Drift-triggered trade lists"""

    def test_medium_priority_trades(self):
        plan = PortfolioOptimizer().rebalance({'A': 0.5, 'B': 0.3, 'C': 0.2},
                                              {'A': 0.46, 'B': 0.31, 'C': 0.23})
        trades = {t.symbol: t for t in plan.trades}
        assert set(trades) == {'A', 'C'}
        assert trades['A'].action == 'SELL'
        assert trades['C'].action == 'BUY'
        assert trades['A'].priority == 'MEDIUM'

    def test_new_holding_and_costs(self):
        plan = PortfolioOptimizer().rebalance({'A': 0.5, 'B': 0.3, 'C': 0.2},
                                              {'A': 0.4, 'B': 0.3, 'C': 0.2, 'D': 0.1},
                                              portfolio_value=100_000)
        trades = {t.symbol: t for t in plan.trades}
        assert trades['D'].priority == 'HIGH'
        assert trades['D'].amount == pytest.approx(10_000)
        assert plan.estimated_cost == pytest.approx(20.0)
        assert plan.cost_pct == pytest.approx(0.02)
        assert plan.to_dict()['total_trades'] == 2

    def test_no_drift(self):
        plan = PortfolioOptimizer().rebalance({'A': 1.0}, {'A': 1.0})
        assert not plan.needed
        assert plan.estimated_cost == 0


class TestWaterFilling:
    """Enforced bounds with a non-zero floor"""

    def test_skewed_returns_with_floor(self):
        covariance = CovarianceMatrix(['A', 'B', 'C'], np.diag([0.04, 0.04, 0.04]))
        optimizer = PortfolioOptimizer(OptimizerConfig(min_weight=0.1, max_weight=0.5, enforce_bounds=True))
        result = optimizer.mean_variance({'A': 20.0, 'B': 0.0, 'C': -1.0}, covariance)

        # proportional start A=101/102, B=1/102, C=0; one shift fills B and C
        assert result.weights['A'] == pytest.approx(0.5)
        assert result.weights['B'] - result.weights['C'] == pytest.approx(1 / 102)
        assert sum(result.weights.values()) == pytest.approx(1.0, abs=1e-9)
        assert result.bound_violations == {}

    def test_floor_binds_on_every_loser(self):
        covariance = CovarianceMatrix(list('ABCDE'), np.diag([0.04] * 5))
        optimizer = PortfolioOptimizer(OptimizerConfig(min_weight=0.15, max_weight=0.6, enforce_bounds=True))
        result = optimizer.mean_variance({'A': 1.0, 'B': -1.0, 'C': -1.0, 'D': -1.0, 'E': -1.0}, covariance)
        assert result.weights['A'] == pytest.approx(0.4)
        assert all(result.weights[s] == pytest.approx(0.15) for s in 'BCDE')

    def test_bounds_that_force_equal_weight(self, covariance):
        optimizer = PortfolioOptimizer(OptimizerConfig(min_weight=0.25, max_weight=1 / 3, enforce_bounds=True))
        result = optimizer.mean_variance(SKEWED_RETURNS, covariance)
        assert sum(result.weights.values()) == pytest.approx(1.0, abs=1e-9)
        assert all(0.25 - 1e-9 <= w <= 1 / 3 + 1e-9 for w in result.weights.values())


RETURN_SCENARIOS = [
    {'A': 0.1, 'B': 0.05, 'C': 0.3},
    SKEWED_RETURNS,
    {'A': -0.5, 'B': -0.2, 'C': -0.9},
    {'A': 20.0, 'B': 0.0, 'C': -1.0},
]

BOUND_SCENARIOS = [(0.0, 1.0), (0.0, 0.4), (0.1, 0.5), (0.2, 0.6), (1 / 3, 1 / 3)]


class TestWeightsSumToOne:
    """Every method and bounds setting produces a full allocation"""

    @pytest.mark.parametrize('enforce', [False, True])
    @pytest.mark.parametrize('bounds', BOUND_SCENARIOS)
    @pytest.mark.parametrize('expected_returns', RETURN_SCENARIOS)
    def test_mean_variance(self, covariance, expected_returns, bounds, enforce):
        lo, hi = bounds
        optimizer = PortfolioOptimizer(OptimizerConfig(min_weight=lo, max_weight=hi, enforce_bounds=enforce))
        result = optimizer.mean_variance(expected_returns, covariance)
        assert abs(sum(result.weights.values()) - 1) < 1e-6
        if enforce:
            assert all(lo - 1e-9 <= w <= hi + 1e-9 for w in result.weights.values())
            assert result.bound_violations == {}

    @pytest.mark.parametrize('method', ['risk_parity', 'minimum_variance'])
    @pytest.mark.parametrize('variances', [[0.04, 0.01, 0.09], [0.0, 0.01, 0.09], [1e-8, 4.0, 0.5]])
    def test_inverse_risk_methods(self, method, variances):
        covariance = CovarianceMatrix(['A', 'B', 'C'], np.diag(variances))
        result = PortfolioOptimizer().optimize(method, covariance)
        assert abs(sum(result.weights.values()) - 1) < 1e-6
