"""
Analysis Orchestrator
=====================
Main pipeline tying the components together:
    DATA → INDICATORS → SIGNALS → CONSENSUS → RISK → PORTFOLIO → ARBITRAGE

The numeric core (``analyze``) is synchronous and pure. ``analyze_async``
adds the external collaborators (market data, commentary, notifications)
around it; any of them may time out or fail without affecting the numbers.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import asyncio
import logging

from .config import AnalysisConfig
from .data import PriceSeries, MarketDataProvider, LiveQuote, YieldCurve
from .features import IndicatorSet
from .alpha import Signal, SignalDetector, SignalAggregator, AggregatedSignal, SignalType, DetectionResult
from .risk import RiskMetricsEngine, RiskReport, StopLevels, PositionSize
from .arbitrage import StatisticalArbitrageDetector, ArbitragePair
from .portfolio import (
    Portfolio, CovarianceMatrix, PortfolioOptimizer, OptimizationResult,
    PerformanceProjector, PerformanceProjection, horizon_table,
    MacroRegime, RegimeAdjuster, RegimeAssessment
)
from .monitoring import NaturalLanguageSummarizer, NotificationSink, build_prompt, dispatch
from .errors import AnalyticsError, ExternalUnavailableError, InvariantViolationError, ErrorKind

logger = logging.getLogger(__name__)

OK = "ok"
NOT_REQUESTED = "not_requested"


# =============================================================================
# REQUEST / REPORT
# =============================================================================

@dataclass
class AnalysisRequest:
    """Inputs for one analysis pass."""
    series: Dict[str, PriceSeries]
    timeframe: str = "1d"
    benchmark: Optional[PriceSeries] = None
    portfolio: Optional[Portfolio] = None
    regime: Optional[Union[MacroRegime, RegimeAssessment]] = None
    arbitrage_pairs: Optional[List[Tuple[str, str]]] = None  # None = every pair
    optimization_methods: Tuple[str, ...] = PortfolioOptimizer.METHODS
    timeframe_series: Optional[Dict[str, Dict[str, PriceSeries]]] = None  # timeframe -> symbol -> series
    capital: Optional[float] = None  # sizes a position for each symbol when set
    project_performance: bool = False


@dataclass
class SymbolAnalysis:
    """Everything computed for one symbol."""
    symbol: str
    indicators: Optional[IndicatorSet] = None
    signals: List[Signal] = field(default_factory=list)
    aggregated: Optional[AggregatedSignal] = None
    risk: Optional[RiskReport] = None
    stops: Optional[StopLevels] = None
    position: Optional[PositionSize] = None
    timeframes: Dict[str, DetectionResult] = field(default_factory=dict)
    errors: Dict[str, dict] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'indicators': self.indicators.to_dict() if self.indicators else None,
            'signals': [s.to_dict() for s in self.signals],
            'aggregated': self.aggregated.to_dict() if self.aggregated else None,
            'risk': self.risk.to_dict() if self.risk else None,
            'stops': self.stops.to_dict() if self.stops else None,
            'position': self.position.to_dict() if self.position else None,
            'timeframes': {tf: d.to_dict() for tf, d in self.timeframes.items()},
            'errors': dict(self.errors)
        }


@dataclass
class Recommendation:
    """Actionable consensus for one symbol."""
    symbol: str
    action: str
    confidence: float
    score: float
    entry_price: float
    stop_loss: Optional[float] = None
    profit_target: Optional[float] = None
    reward_risk_ratio: Optional[float] = None
    signal_count: int = 0
    position_units: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'action': self.action,
            'confidence': self.confidence,
            'score': self.score,
            'entry_price': self.entry_price,
            'stop_loss': self.stop_loss,
            'profit_target': self.profit_target,
            'reward_risk_ratio': self.reward_risk_ratio,
            'signal_count': self.signal_count,
            'position_units': self.position_units
        }


@dataclass
class AnalysisReport:
    """Output of one analysis pass."""
    timeframe: str
    symbols: Dict[str, SymbolAnalysis] = field(default_factory=dict)
    portfolio_risk: Optional[RiskReport] = None
    optimization: Dict[str, OptimizationResult] = field(default_factory=dict)
    projection: Optional[PerformanceProjection] = None
    regime: Optional[RegimeAssessment] = None
    adjusted_weights: Optional[Dict[str, float]] = None
    arbitrage: List[ArbitragePair] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)
    yield_curve: Optional[YieldCurve] = None
    live_prices: Dict[str, LiveQuote] = field(default_factory=dict)
    data_quality: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, dict] = field(default_factory=dict)
    commentary: Optional[str] = None
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def signal_count(self) -> int:
        return sum(len(a.signals) for a in self.symbols.values())

    def headline(self) -> str:
        return (f"{len(self.symbols)} symbols, {self.signal_count} signals, "
                f"{len(self.recommendations)} recommendations")

    def to_dict(self) -> dict:
        return {
            'timeframe': self.timeframe,
            'generated_at': self.generated_at.isoformat(),
            'symbols': {s: a.to_dict() for s, a in self.symbols.items()},
            'portfolio_risk': self.portfolio_risk.to_dict() if self.portfolio_risk else None,
            'optimization': {m: r.to_dict() for m, r in self.optimization.items()},
            'projection': self.projection.to_dict() if self.projection else None,
            'regime': self.regime.to_dict() if self.regime else None,
            'adjusted_weights': dict(self.adjusted_weights) if self.adjusted_weights else None,
            'arbitrage': [p.to_dict() for p in self.arbitrage],
            'recommendations': [r.to_dict() for r in self.recommendations],
            'yield_curve': self.yield_curve.to_dict() if self.yield_curve else None,
            'live_prices': {s: q.to_dict() for s, q in self.live_prices.items()},
            'data_quality': dict(self.data_quality),
            'errors': dict(self.errors),
            'commentary': self.commentary
        }


# =============================================================================
# PIPELINE
# =============================================================================

class AnalysisPipeline:
    """
    Runs every component over an AnalysisRequest.

    Errors scoped to one symbol, pair or optimizer are recorded on the report
    and the rest of the pass continues. InvariantViolationError is never
    recorded; it propagates to the caller.
    """

    def __init__(self, config: AnalysisConfig = None):
        self.config = config or AnalysisConfig()
        cfg = self.config
        self.detector = SignalDetector(cfg.signals, cfg.indicators)
        self.aggregator = SignalAggregator(cfg.aggregator)
        self.risk_engine = RiskMetricsEngine(cfg.risk)
        self.arbitrage = StatisticalArbitrageDetector(cfg.arbitrage)
        self.optimizer = PortfolioOptimizer(cfg.optimizer)
        self.projector = PerformanceProjector(cfg.projection)
        self.regime_adjuster = RegimeAdjuster(cfg.regime)

        logger.info("AnalysisPipeline initialized")

    # =========================================================================
    # SYNC CORE
    # =========================================================================

    def analyze(self, request: AnalysisRequest) -> AnalysisReport:
        report = AnalysisReport(timeframe=request.timeframe)
        logger.info(f"Analyzing {len(request.series)} symbols [{request.timeframe}]")

        benchmark_values = request.benchmark.closes() if request.benchmark is not None else None
        other_frames = {tf: frames for tf, frames in (request.timeframe_series or {}).items()
                        if tf != request.timeframe}
        for symbol, series in request.series.items():
            extra = {tf: frames[symbol] for tf, frames in other_frames.items() if symbol in frames}
            analysis = self._analyze_symbol(symbol, series, request.timeframe, benchmark_values,
                                            extra, request.capital)
            report.symbols[symbol] = analysis
            report.data_quality[symbol] = OK if analysis.ok else self._worst_kind(analysis.errors)

        price_map = {s: series.closes() for s, series in request.series.items()}

        if request.portfolio is not None:
            report.portfolio_risk = self._attempt(
                report.errors, 'portfolio_risk',
                lambda: self.risk_engine.portfolio_report(request.portfolio, price_map, benchmark_values))

        inputs = self._portfolio_inputs(request, price_map, report)
        if inputs is not None:
            self._optimize(request, inputs, report)
        self._apply_regime(request, report)
        if request.project_performance and inputs is not None:
            self._project(request, inputs, report)

        if len(request.series) >= 2:
            for pair, result in self.arbitrage.scan(request.series, request.arbitrage_pairs).items():
                if result.ok:
                    report.arbitrage.append(result.value)
                else:
                    report.errors[f"arbitrage:{pair[0]}/{pair[1]}"] = result.error.to_dict()

        report.recommendations = self._recommendations(report)
        logger.info(f"Analysis complete: {report.headline()}")
        return report

    def _analyze_symbol(self, symbol: str, series: PriceSeries, timeframe: str, benchmark_values,
                        extra_frames: Optional[Dict[str, PriceSeries]] = None,
                        capital: Optional[float] = None) -> SymbolAnalysis:
        analysis = SymbolAnalysis(symbol=symbol)
        errors = analysis.errors

        analysis.indicators = self.detector.engine.compute_all(series)
        detection = self._attempt(errors, 'signals', lambda: self.detector.detect(series, timeframe))
        if detection is not None:
            analysis.timeframes[timeframe] = detection
        for tf, frame in (extra_frames or {}).items():
            detection = self._attempt(errors, f"signals:{tf}", lambda: self.detector.detect(frame, tf))
            if detection is not None:
                analysis.timeframes[tf] = detection
        if analysis.timeframes:
            analysis.signals = [s for d in analysis.timeframes.values() for s in d.signals]
            analysis.aggregated = self.aggregator.aggregate(analysis.signals)

        if benchmark_values is not None:
            n = min(len(series), len(benchmark_values))
            analysis.risk = self._attempt(
                errors, 'risk', lambda: self.risk_engine.report(series.closes()[-n:], benchmark_values[-n:]))
        else:
            analysis.risk = self._attempt(errors, 'risk', lambda: self.risk_engine.report(series.closes()))

        atr = analysis.indicators.get('atr')
        if atr is not None and analysis.risk is not None and len(series):
            direction = 'short' if analysis.aggregated and analysis.aggregated.direction.value < 0 else 'long'
            analysis.stops = self.risk_engine.dynamic_stop_loss(
                series.last.close, atr.current, analysis.risk.volatility, direction)

        stops = analysis.stops
        if capital is not None and stops is not None:
            analysis.position = self._attempt(
                errors, 'position',
                lambda: self.risk_engine.position_size(capital, stops.entry, stops.stop_loss,
                                                       analysis.risk.volatility))

        logger.debug(f"{symbol}: {len(analysis.signals)} signals over {list(analysis.timeframes)}, "
                     f"errors={list(errors)}")
        return analysis

    def _portfolio_inputs(self, request: AnalysisRequest, price_map: Dict[str, Any],
                          report: AnalysisReport) -> Optional[Tuple[CovarianceMatrix, Dict[str, float]]]:
        """Covariance and expected returns shared by the optimizer and the projection."""
        if not request.optimization_methods and not request.project_performance:
            return None
        portfolio = request.portfolio
        covariance = portfolio.covariance if portfolio is not None else None
        if covariance is None:
            if len(price_map) < 2:
                return None
            covariance = self._attempt(
                report.errors, 'covariance',
                lambda: CovarianceMatrix.from_prices(price_map, self.config.risk.trading_days))
            if covariance is None:
                return None

        expected = dict(portfolio.expected_returns) if portfolio is not None and portfolio.expected_returns else {}
        if not expected:
            for symbol in covariance.symbols:
                analysis = report.symbols.get(symbol)
                if analysis is not None and analysis.risk is not None:
                    expected[symbol] = analysis.risk.annualized_return
        return covariance, expected

    def _optimize(self, request: AnalysisRequest, inputs: Tuple[CovarianceMatrix, Dict[str, float]],
                  report: AnalysisReport):
        covariance, expected = inputs
        for method in request.optimization_methods:
            if method == 'mean_variance' and not expected:
                continue
            result = self._attempt(report.errors, f"optimization:{method}",
                                   lambda: self.optimizer.optimize(method, covariance, expected or None))
            if result is not None:
                report.optimization[method] = result

    def _project(self, request: AnalysisRequest, inputs: Tuple[CovarianceMatrix, Dict[str, float]],
                 report: AnalysisReport):
        """Monte Carlo projection of the allocation the report settles on."""
        covariance, expected = inputs
        weights = report.adjusted_weights or self._base_weights(request, report)
        if not weights:
            return
        report.projection = self._attempt(
            report.errors, 'projection', lambda: self.projector.project(weights, expected, covariance))

    @staticmethod
    def _base_weights(request: AnalysisRequest, report: AnalysisReport) -> Optional[Dict[str, float]]:
        """Held weights first, then mean-variance, then whichever optimizer ran first."""
        if request.portfolio is not None:
            return request.portfolio.weights
        if 'mean_variance' in report.optimization:
            return report.optimization['mean_variance'].weights
        if report.optimization:
            return next(iter(report.optimization.values())).weights
        return None

    def _apply_regime(self, request: AnalysisRequest, report: AnalysisReport):
        regime = request.regime
        if regime is None:
            return
        if isinstance(regime, MacroRegime):
            report.regime = RegimeAssessment(regime=regime, confidence=50, growth_strength=0.0,
                                             inflation_strength=0.0)
        else:
            report.regime = regime

        base = self._base_weights(request, report)
        if base is None:
            return
        report.adjusted_weights = self._attempt(
            report.errors, 'regime_adjustment', lambda: self.regime_adjuster.adjust(base, report.regime))

    def _recommendations(self, report: AnalysisReport) -> List[Recommendation]:
        """Actionable consensus with confidence above 60, best first, at most ten."""
        recs = []
        for symbol, analysis in report.symbols.items():
            agg = analysis.aggregated
            if agg is None or agg.direction == SignalType.NEUTRAL or agg.confidence <= 60:
                continue
            quote = report.live_prices.get(symbol)
            stops = analysis.stops
            entry = quote.price if quote is not None else (stops.entry if stops else None)
            if entry is None:
                continue
            recs.append(Recommendation(
                symbol=symbol,
                action='buy' if agg.direction.value > 0 else 'sell',
                confidence=agg.confidence,
                score=agg.score,
                entry_price=entry,
                stop_loss=stops.stop_loss if stops else None,
                profit_target=stops.profit_target if stops else None,
                reward_risk_ratio=stops.reward_risk_ratio if stops else None,
                signal_count=agg.signal_count,
                position_units=analysis.position.units if analysis.position else None
            ))
        recs.sort(key=lambda r: r.confidence, reverse=True)
        return recs[:10]

    @staticmethod
    def _attempt(errors: Dict[str, dict], stage: str, fn: Callable[[], Any]):
        """Run ``fn``; record an AnalyticsError under ``stage`` and return None."""
        try:
            return fn()
        except InvariantViolationError:
            raise
        except AnalyticsError as e:
            logger.warning(f"{stage} failed: {e.message}")
            errors[stage] = e.to_dict()
            return None

    @staticmethod
    def _worst_kind(errors: Dict[str, dict]) -> str:
        kinds = [e.get('error') for e in errors.values()]
        for kind in (ErrorKind.INSUFFICIENT_DATA, ErrorKind.DEGENERATE_INPUT, ErrorKind.INVALID_INPUT):
            if kind.value in kinds:
                return kind.value
        return kinds[0] if kinds else OK

    # =========================================================================
    # ASYNC COLLABORATORS
    # =========================================================================

    async def analyze_async(self, request: AnalysisRequest,
                            provider: Optional[MarketDataProvider] = None,
                            summarizer: Optional[NaturalLanguageSummarizer] = None,
                            sinks: Optional[List[NotificationSink]] = None) -> AnalysisReport:
        """
        Fetch external context concurrently, run the numeric core, then add
        commentary and send notifications.

        External results are merged in a fixed order: regime, yield curve,
        benchmark, live prices (in symbol order). A source that fails or
        exceeds ``ExternalConfig.timeout_seconds`` is marked
        ``external_unavailable`` in ``data_quality``; nothing is retried.
        """
        ext = self.config.external
        quality: Dict[str, str] = {}
        curve = None
        quotes: Dict[str, LiveQuote] = {}

        if provider is not None:
            jobs: List[Tuple[str, Any]] = []
            if request.regime is None:
                jobs.append(('regime', provider.fetch_regime()))
            jobs.append(('yield_curve', provider.fetch_yield_curve()))
            if request.benchmark is None and self.config.benchmark:
                jobs.append(('benchmark', provider.fetch_history(
                    self.config.benchmark, ext.history_period, ext.history_interval)))
            for symbol in request.series:
                jobs.append((f"live_price:{symbol}", provider.fetch_live_price(symbol)))

            outcomes = await asyncio.gather(
                *(self._guarded(name, job) for name, job in jobs), return_exceptions=True)

            for (name, _), outcome in zip(jobs, outcomes):
                if isinstance(outcome, BaseException):
                    quality[name] = ErrorKind.EXTERNAL_UNAVAILABLE.value
                    continue
                quality[name] = OK
                if name == 'regime':
                    request = replace(request, regime=self.regime_adjuster.assess_regime(outcome))
                elif name == 'yield_curve':
                    curve = outcome
                elif name == 'benchmark':
                    request = replace(request, benchmark=outcome)
                else:
                    quotes[name.split(':', 1)[1]] = outcome
        else:
            quality['market_data'] = NOT_REQUESTED

        report = self.analyze(request)
        report.yield_curve = curve
        report.live_prices = quotes
        report.data_quality.update(quality)
        if quotes:
            report.recommendations = self._recommendations(report)

        loop = asyncio.get_running_loop()
        if summarizer is not None:
            try:
                report.commentary = await asyncio.wait_for(
                    loop.run_in_executor(None, summarizer.summarize, build_prompt(report), ext.summary_max_tokens),
                    timeout=ext.timeout_seconds)
                report.data_quality['commentary'] = OK
            except Exception as e:
                logger.error(f"Commentary unavailable: {e!r}")
                report.data_quality['commentary'] = ErrorKind.EXTERNAL_UNAVAILABLE.value
        else:
            report.data_quality['commentary'] = NOT_REQUESTED

        if sinks:
            try:
                failures = await asyncio.wait_for(
                    loop.run_in_executor(None, dispatch, list(sinks), report, ext.destinations),
                    timeout=ext.timeout_seconds)
                report.data_quality['notifications'] = OK if not failures else ErrorKind.EXTERNAL_UNAVAILABLE.value
            except asyncio.TimeoutError:
                logger.error("Notification delivery timed out")
                report.data_quality['notifications'] = ErrorKind.EXTERNAL_UNAVAILABLE.value

        return report

    async def _guarded(self, name: str, coro):
        """Await ``coro`` under the collaborator timeout; failures become ExternalUnavailableError."""
        timeout = self.config.external.timeout_seconds
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"{name} timed out after {timeout}s")
            raise ExternalUnavailableError(f"{name} timed out", details={'timeout': timeout})
        except ExternalUnavailableError as e:
            logger.error(f"{name} unavailable: {e.message}")
            raise
        except Exception as e:
            logger.error(f"{name} failed: {e!r}")
            raise ExternalUnavailableError(f"{name} failed: {e}")

    @staticmethod
    async def load_universe(provider: MarketDataProvider, symbols: List[str],
                            period: str = "1y", interval: str = "1d",
                            timeout: float = 10.0) -> Dict[str, PriceSeries]:
        """Fetch history for every symbol concurrently; failed symbols are logged and left out."""
        async def _one(symbol):
            return await asyncio.wait_for(provider.fetch_history(symbol, period, interval), timeout=timeout)

        outcomes = await asyncio.gather(*(_one(s) for s in symbols), return_exceptions=True)
        universe = {}
        for symbol, outcome in zip(symbols, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"History for {symbol} unavailable: {outcome!r}")
            else:
                universe[symbol] = outcome
        return universe


# =============================================================================
# ENTRY POINT
# =============================================================================

def setup_logging(config=None):
    """Configure root logging from a MonitoringConfig."""
    from .config import MonitoringConfig
    config = config or MonitoringConfig()
    handlers = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def main():
    """Command-line entry point."""
    import argparse
    import json

    parser = argparse.ArgumentParser(description='Quantitative Market Analytics')
    parser.add_argument('symbols', nargs='*', help='Symbols to analyze (default: from config)')
    parser.add_argument('--source', choices=['mock', 'yahoo'], default='mock', help='Market data source')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--timeframes', nargs='+', default=[], help='Extra history intervals to detect on (e.g. 1wk 1mo)')
    parser.add_argument('--capital', type=float, help='Capital for position sizing')
    parser.add_argument('--project', action='store_true', help='Monte Carlo projection of the chosen allocation')
    parser.add_argument('--json', action='store_true', help='Print the full report as JSON')
    parser.add_argument('--log-level', type=str, help='Override the configured log level')

    args = parser.parse_args()

    config = AnalysisConfig.load(args.config) if args.config else AnalysisConfig()
    if args.log_level:
        config.monitoring.log_level = args.log_level
    setup_logging(config.monitoring)

    if args.source == 'yahoo':
        from .data import YFinanceProvider
        provider = YFinanceProvider()
    else:
        from .data import MockMarketDataProvider
        provider = MockMarketDataProvider()

    symbols = args.symbols or config.symbols
    pipeline = AnalysisPipeline(config)

    async def _run():
        ext = config.external
        series = await pipeline.load_universe(provider, symbols, ext.history_period,
                                              ext.history_interval, ext.timeout_seconds)
        if not series:
            raise ExternalUnavailableError("No price history available for any symbol")
        frames = {}
        for interval in args.timeframes:
            frames[interval] = await pipeline.load_universe(provider, list(series), ext.history_period,
                                                            interval, ext.timeout_seconds)
        request = AnalysisRequest(series=series, timeframe=config.timeframe, timeframe_series=frames or None,
                                  capital=args.capital, project_performance=args.project)
        return await pipeline.analyze_async(request, provider)

    report = asyncio.run(_run())

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
        return

    print("\n" + "=" * 50)
    print("MARKET ANALYSIS")
    print("=" * 50)
    for symbol, analysis in report.symbols.items():
        agg = analysis.aggregated
        if agg is None:
            print(f"{symbol:6s} unavailable: {', '.join(analysis.errors)}")
        else:
            print(f"{symbol:6s} {agg.direction.name:12s} score={agg.score:+.2f} "
                  f"confidence={agg.confidence:.0f}% signals={agg.signal_count}")
    if report.regime is not None:
        print(f"Regime: {report.regime.regime.value} ({report.regime.confidence}%)")
    for method, result in report.optimization.items():
        weights = ', '.join(f"{s}={w:.2f}" for s, w in result.weights.items())
        print(f"{method}: {weights}")
    if report.projection is not None:
        for row in horizon_table(report.projection):
            print(f"{row['years']:2d}y median={row['median']:,.0f} "
                  f"p5={row['p5']:,.0f} p95={row['p95']:,.0f} loss={row['loss_probability']:.0%}")
    for pair in report.arbitrage:
        print(f"{pair.asset_a}/{pair.asset_b}: {pair.signal.value} z={pair.zscore:.2f}")
    print(f"Data quality: {report.data_quality}")


if __name__ == "__main__":
    main()
