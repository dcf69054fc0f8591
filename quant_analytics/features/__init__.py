"""
Feature Engineering Module
==========================
"""
from .indicators import TechnicalIndicators, IndicatorEngine, IndicatorResult, IndicatorSet

__all__ = ['TechnicalIndicators', 'IndicatorEngine', 'IndicatorResult', 'IndicatorSet']
