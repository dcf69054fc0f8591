"""
Configuration Management
========================
Central configuration for the analytics pipeline.

Every component takes an optional config section and falls back to the
defaults below, so a bare ``IndicatorEngine()`` behaves exactly like one
built from ``AnalysisConfig().indicators``.
"""

from dataclasses import dataclass, field, fields
from typing import List, Dict, Optional
import json
import os


@dataclass
class SignalSpec:
    """Strength / confidence / category of one signal kind."""
    strength: str
    confidence: float
    category: str

    def to_dict(self) -> dict:
        return {'strength': self.strength, 'confidence': self.confidence, 'category': self.category}

    @classmethod
    def from_dict(cls, data: dict) -> 'SignalSpec':
        return cls(data['strength'], float(data['confidence']), data['category'])


def _default_signal_table() -> Dict[str, SignalSpec]:
    return {
        "ma_golden_cross": SignalSpec("strong", 80, "trend"),
        "ma_death_cross": SignalSpec("strong", 80, "trend"),
        "price_above_mas": SignalSpec("medium", 65, "trend"),
        "price_below_mas": SignalSpec("medium", 65, "trend"),
        "rsi_oversold": SignalSpec("medium", 70, "rsi"),
        "rsi_overbought": SignalSpec("medium", 70, "rsi"),
        "rsi_divergence": SignalSpec("strong", 85, "rsi"),
        "macd_crossover": SignalSpec("medium", 75, "macd"),
        "bollinger_lower_break": SignalSpec("medium", 65, "bollinger"),
        "bollinger_upper_break": SignalSpec("medium", 65, "bollinger"),
        "stochastic_cross": SignalSpec("weak", 55, "momentum"),
        "adx_trend": SignalSpec("medium", 65, "trend"),
        "support_bounce": SignalSpec("medium", 60, "levels"),
        "resistance_reject": SignalSpec("medium", 60, "levels"),
        "double_bottom": SignalSpec("medium", 70, "pattern"),
        "double_top": SignalSpec("medium", 70, "pattern"),
        "triangle_breakout": SignalSpec("strong", 75, "pattern"),
        "head_and_shoulders": SignalSpec("strong", 80, "pattern"),
        "volume_spike": SignalSpec("medium", 75, "volume"),
        "volume_price_divergence": SignalSpec("medium", 65, "volume"),
    }


@dataclass
class IndicatorConfig:
    """Technical indicator parameters."""
    # Moving averages used by the crossover rules
    fast_ma_period: int = 20
    slow_ma_period: int = 50
    ema_smoothing: float = 2.0

    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bollinger_period: int = 20
    bollinger_std: float = 2.0
    atr_period: int = 14
    stochastic_period: int = 14
    stochastic_d_period: int = 3
    williams_period: int = 14
    adx_period: int = 14

    # Volume features
    volume_ma_period: int = 20


@dataclass
class SignalConfig:
    """Signal detection thresholds."""
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    stochastic_oversold: float = 20.0
    stochastic_overbought: float = 80.0
    adx_trend_threshold: float = 25.0
    volume_spike_ratio: float = 2.0

    # Support / resistance
    level_proximity_pct: float = 0.02  # within 2% of a level
    level_lookback: int = 50
    level_cluster_pct: float = 0.01

    # Pattern detection
    pattern_lookback: int = 60
    pattern_tolerance_pct: float = 0.03
    triangle_lookback: int = 20
    divergence_lookback: int = 14
    volume_divergence_lookback: int = 10

    signal_table: Dict[str, SignalSpec] = field(default_factory=_default_signal_table)


@dataclass
class AggregatorConfig:
    """Consensus weighting (weights need not sum to 1.0)."""
    category_weights: Dict[str, float] = field(default_factory=lambda: {
        "rsi": 0.20,
        "macd": 0.25,
        "bollinger": 0.20,
        "volume": 0.15,
        "trend": 0.20,
        "momentum": 0.10,
        "levels": 0.10,
        "pattern": 0.15,
    })
    default_weight: float = 0.10

    strong_buy_threshold: float = 0.6
    buy_threshold: float = 0.3
    sell_threshold: float = -0.3
    strong_sell_threshold: float = -0.6
    min_confidence: float = 50.0


@dataclass
class RiskConfig:
    """Risk metric parameters."""
    trading_days: int = 252
    risk_free_rate: float = 0.02
    sortino_target: float = 0.02  # annualized
    var_confidence: float = 0.95
    attribution_tolerance: float = 1e-9

    # Correlation limits
    max_correlation: float = 0.7

    # Stop loss sizing
    atr_stop_multiplier: float = 2.0
    reward_risk_ratio: float = 3.0

    # Position sizing
    risk_per_trade_pct: float = 0.02  # capital lost if the stop is hit
    max_position_size_pct: float = 0.10  # cap on position value
    target_volatility: float = 0.15  # annualized
    min_volatility_adjustment: float = 0.5
    max_volatility_adjustment: float = 2.0


@dataclass
class ArbitrageConfig:
    """Pair trading parameters."""
    min_observations: int = 20
    zscore_threshold: float = 2.0
    min_correlation: float = 0.7
    min_cointegration: float = 0.6
    target_fraction: float = 0.8
    stop_loss_std: float = 1.0
    days_per_zscore: float = 5.0


@dataclass
class OptimizerConfig:
    """Portfolio weight optimizer parameters."""
    min_weight: float = 0.0
    max_weight: float = 1.0
    risk_free_rate: float = 0.02
    weight_tolerance: float = 1e-6

    # Water-fill into [min_weight, max_weight] instead of a single renormalization
    enforce_bounds: bool = False

    # Rebalancing
    rebalance_threshold: float = 0.02
    high_priority_drift: float = 0.05
    transaction_cost_pct: float = 0.001


@dataclass
class ProjectionConfig:
    """Monte Carlo performance projection parameters."""
    iterations: int = 1000
    horizons_years: List[int] = field(default_factory=lambda: [1, 3, 5, 10, 20])
    initial_value: float = 100000.0
    risk_free_rate: float = 0.02
    seed: Optional[int] = None


@dataclass
class RegimeConfig:
    """Macro regime tilts."""
    overweight_multiplier: float = 1.2
    neutral_multiplier: float = 1.0
    underweight_multiplier: float = 0.8
    default_asset_class: str = "stocks"
    asset_classes: Dict[str, str] = field(default_factory=lambda: {
        "TLT": "bonds", "IEF": "bonds", "SHY": "bonds", "BND": "bonds", "AGG": "bonds",
        "GLD": "commodities", "SLV": "commodities", "USO": "commodities", "DBC": "commodities",
        "TIP": "tips", "SCHP": "tips", "VTIP": "tips",
        "BIL": "cash", "SHV": "cash", "SGOV": "cash",
    })


@dataclass
class MonitoringConfig:
    """Signal monitor and logging configuration."""
    check_interval_seconds: int = 60
    history_capacity: int = 100
    min_alert_confidence: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class ExternalConfig:
    """Collaborator calls (market data, commentary, notifications)."""
    timeout_seconds: float = 10.0
    summary_max_tokens: int = 800
    history_period: str = "1y"
    history_interval: str = "1d"
    destinations: List[str] = field(default_factory=list)


@dataclass
class AnalysisConfig:
    """Master configuration."""
    timeframe: str = "1d"
    symbols: List[str] = field(default_factory=lambda: ["SPY", "QQQ", "TLT", "GLD"])
    benchmark: Optional[str] = "SPY"

    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    signals: SignalConfig = field(default_factory=SignalConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    arbitrage: ArbitrageConfig = field(default_factory=ArbitrageConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    regime: RegimeConfig = field(default_factory=RegimeConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    external: ExternalConfig = field(default_factory=ExternalConfig)

    _SECTIONS = ('indicators', 'signals', 'aggregator', 'risk', 'arbitrage',
                 'optimizer', 'projection', 'regime', 'monitoring', 'external')

    def save(self, filepath: str):
        """Save configuration to JSON file."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self._to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'AnalysisConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    def _to_dict(self) -> dict:
        """Convert to dictionary."""
        data = {
            'timeframe': self.timeframe,
            'symbols': list(self.symbols),
            'benchmark': self.benchmark,
        }
        for name in self._SECTIONS:
            section = getattr(self, name)
            values = {}
            for f in fields(section):
                value = getattr(section, f.name)
                if f.name == 'signal_table':
                    value = {kind: spec.to_dict() for kind, spec in value.items()}
                elif isinstance(value, dict):
                    value = dict(value)
                elif isinstance(value, list):
                    value = list(value)
                values[f.name] = value
            data[name] = values
        return data

    @classmethod
    def _from_dict(cls, data: dict) -> 'AnalysisConfig':
        """Create from dictionary."""
        config = cls()
        config.timeframe = data.get('timeframe', config.timeframe)
        config.symbols = list(data.get('symbols', config.symbols))
        config.benchmark = data.get('benchmark', config.benchmark)

        for name in cls._SECTIONS:
            section = getattr(config, name)
            known = {f.name for f in fields(section)}
            for key, value in data.get(name, {}).items():
                if key not in known:
                    continue
                if key == 'signal_table':
                    value = {kind: SignalSpec.from_dict(spec) for kind, spec in value.items()}
                setattr(section, key, value)
        return config


# Default configuration instance
DEFAULT_CONFIG = AnalysisConfig()
