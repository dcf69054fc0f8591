"""
Quantitative Market Analytics
=============================

Technical and portfolio analytics over price/volume history:

- Technical indicators (SMA, EMA, RSI, MACD, Bollinger, ATR, Stochastic, ADX, ...)
- Edge-triggered signal detection (crossovers, threshold entries, levels, patterns)
- Weighted consensus rating with a confidence score
- Risk and performance metrics (VaR/CVaR, Sharpe, Sortino, Calmar, drawdown, beta/alpha)
- Heuristic portfolio optimizers and macro-regime weight tilts
- Statistical-arbitrage pair signals

PIPELINE:
    ┌─────────────┐
    │ PRICESERIES │  ← OHLCV history (yfinance or synthetic)
    └──────┬──────┘
           ↓
    ┌──────────────┐
    │  INDICATORS  │  ← rolling-window numerics
    └──────┬───────┘
           ↓
    ┌──────────────┐
    │   SIGNALS    │  ← state transitions only
    └──────┬───────┘
           ↓
    ┌──────────────┐
    │  CONSENSUS   │  ← direction, score, confidence
    └──────────────┘

    PriceSeries + Portfolio      → RISK METRICS  → RiskReport
    expected returns + covariance → OPTIMIZER    → weights → REGIME → adjusted weights
    two PriceSeries               → STAT ARB     → pair signal

USAGE:
    # Command line (synthetic data)
    quant-analytics SPY QQQ TLT GLD

    # Programmatic usage
    from quant_analytics import AnalysisPipeline, AnalysisRequest, PriceSeries

    series = {'SPY': PriceSeries.from_dataframe('SPY', df)}
    report = AnalysisPipeline().analyze(AnalysisRequest(series=series))
    print(report.to_dict())
"""

from .config import (
    AnalysisConfig,
    IndicatorConfig,
    SignalConfig,
    AggregatorConfig,
    RiskConfig,
    ArbitrageConfig,
    OptimizerConfig,
    RegimeConfig,
    MonitoringConfig,
    ExternalConfig,
    DEFAULT_CONFIG
)
from .errors import (
    ErrorKind,
    AnalyticsError,
    InsufficientDataError,
    DegenerateInputError,
    ExternalUnavailableError,
    InvariantViolationError,
    InvalidInputError,
    Result
)
from .data import PricePoint, PriceSeries, MarketDataProvider, MockMarketDataProvider
from .features import IndicatorEngine, TechnicalIndicators
from .alpha import SignalDetector, SignalAggregator, Signal, SignalType
from .risk import RiskMetricsEngine, PerformanceAttribution, UNBOUNDED
from .arbitrage import StatisticalArbitrageDetector
from .portfolio import Portfolio, CovarianceMatrix, PortfolioOptimizer, RegimeAdjuster, MacroRegime
from .monitoring import SignalMonitor
from .orchestrator import AnalysisPipeline, AnalysisRequest, AnalysisReport

__version__ = "1.0.0"

__all__ = [
    # Config
    'AnalysisConfig',
    'IndicatorConfig',
    'SignalConfig',
    'AggregatorConfig',
    'RiskConfig',
    'ArbitrageConfig',
    'OptimizerConfig',
    'RegimeConfig',
    'MonitoringConfig',
    'ExternalConfig',
    'DEFAULT_CONFIG',

    # Errors
    'ErrorKind',
    'AnalyticsError',
    'InsufficientDataError',
    'DegenerateInputError',
    'ExternalUnavailableError',
    'InvariantViolationError',
    'InvalidInputError',
    'Result',

    # Components
    'PricePoint',
    'PriceSeries',
    'MarketDataProvider',
    'MockMarketDataProvider',
    'IndicatorEngine',
    'TechnicalIndicators',
    'SignalDetector',
    'SignalAggregator',
    'Signal',
    'SignalType',
    'RiskMetricsEngine',
    'PerformanceAttribution',
    'UNBOUNDED',
    'StatisticalArbitrageDetector',
    'Portfolio',
    'CovarianceMatrix',
    'PortfolioOptimizer',
    'RegimeAdjuster',
    'MacroRegime',
    'SignalMonitor',

    # Pipeline
    'AnalysisPipeline',
    'AnalysisRequest',
    'AnalysisReport',
]
