"""
Risk Metrics Module
===================
"""
from .metrics import (
    RiskMetricsEngine, RiskReport, BenchmarkStats, Drawdown, CorrelationRisk,
    StopLevels, PositionSize, RiskLevel, UNBOUNDED
)
from .attribution import PerformanceAttribution, AttributionResult

__all__ = [
    'RiskMetricsEngine', 'RiskReport', 'BenchmarkStats', 'Drawdown', 'CorrelationRisk',
    'StopLevels', 'PositionSize', 'RiskLevel', 'UNBOUNDED', 'PerformanceAttribution', 'AttributionResult'
]
