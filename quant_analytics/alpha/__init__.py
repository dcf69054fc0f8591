"""
Alpha Module
============
"""
from .signals import (
    Signal, SignalType, SignalKind, SignalCategory, Direction, Strength, summarize_kinds
)
from .patterns import PriceLevel, PatternMatch, find_support_resistance
from .detector import SignalDetector, DetectorState, DetectionResult, IndicatorSnapshot
from .aggregator import SignalAggregator, AggregatedSignal, CategoryBreakdown

__all__ = [
    'Signal', 'SignalType', 'SignalKind', 'SignalCategory', 'Direction', 'Strength',
    'summarize_kinds', 'PriceLevel', 'PatternMatch', 'find_support_resistance',
    'SignalDetector', 'DetectorState', 'DetectionResult', 'IndicatorSnapshot',
    'SignalAggregator', 'AggregatedSignal', 'CategoryBreakdown'
]
