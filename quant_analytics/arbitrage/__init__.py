"""
Statistical Arbitrage Module
============================
"""
from .stat_arb import StatisticalArbitrageDetector, ArbitragePair, PairSignal

__all__ = ['StatisticalArbitrageDetector', 'ArbitragePair', 'PairSignal']
