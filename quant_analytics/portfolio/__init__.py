"""
Portfolio Module
================
"""
from .models import Portfolio, CovarianceMatrix, AssetClassification, WEIGHT_TOLERANCE
from .optimizer import PortfolioOptimizer, OptimizationResult, RebalancePlan, RebalanceTrade
from .projection import PerformanceProjector, PerformanceProjection, HorizonProjection, horizon_table
from .regime import MacroRegime, RegimeAdjuster, RegimeAssessment, Stance, ASSET_CLASSES

__all__ = [
    'Portfolio', 'CovarianceMatrix', 'AssetClassification', 'WEIGHT_TOLERANCE',
    'PortfolioOptimizer', 'OptimizationResult', 'RebalancePlan', 'RebalanceTrade',
    'PerformanceProjector', 'PerformanceProjection', 'HorizonProjection', 'horizon_table',
    'MacroRegime', 'RegimeAdjuster', 'RegimeAssessment', 'Stance', 'ASSET_CLASSES'
]
