"""
Signal Monitor
==============
Incremental signal detection over repeated observations of a symbol
universe.

Owns the only persistent state in the package: a bounded history of ticks
and one DetectorState per symbol. A tick that starts while another is still
running is skipped rather than run concurrently.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional
import logging
import threading

import pandas as pd

from .alerts import Alert, AlertSeverity, NotificationSink, dispatch
from ..alpha import SignalAggregator, SignalDetector, DetectorState, DetectionResult, AggregatedSignal, SignalType
from ..errors import AnalyticsError

logger = logging.getLogger(__name__)


@dataclass
class MonitorRecord:
    """Outcome of one monitoring tick."""
    timestamp: pd.Timestamp
    detections: Dict[str, DetectionResult] = field(default_factory=dict)
    aggregated: Dict[str, AggregatedSignal] = field(default_factory=dict)
    errors: Dict[str, dict] = field(default_factory=dict)
    alerts: List[Alert] = field(default_factory=list)

    @property
    def signal_count(self) -> int:
        return sum(len(d.signals) for d in self.detections.values())

    def to_dict(self) -> dict:
        return {
            'timestamp': str(self.timestamp),
            'detections': {s: d.to_dict() for s, d in self.detections.items()},
            'aggregated': {s: a.to_dict() for s, a in self.aggregated.items()},
            'errors': dict(self.errors),
            'alerts': [a.to_dict() for a in self.alerts]
        }


class SignalMonitor:
    """
    Feeds each tick's series through per-symbol detector state.

    Usage:
        monitor = SignalMonitor(sinks=[LoggingNotificationSink()])
        record = monitor.tick({'SPY': spy_series})
        monitor.start(source=fetch_latest)   # background polling
        monitor.stop()
    """

    def __init__(self, config=None, detector: Optional[SignalDetector] = None,
                 aggregator: Optional[SignalAggregator] = None,
                 sinks: Optional[List[NotificationSink]] = None,
                 destinations: Optional[List[str]] = None,
                 timeframe: str = "1d"):
        from ..config import MonitoringConfig
        self.config = config or MonitoringConfig()
        self.detector = detector or SignalDetector()
        self.aggregator = aggregator or SignalAggregator()
        self.sinks: List[NotificationSink] = list(sinks or [])
        self.destinations = list(destinations or [])
        self.timeframe = timeframe

        self.history: Deque[MonitorRecord] = deque(maxlen=self.config.history_capacity)
        self.states: Dict[str, DetectorState] = {}
        self.skipped_ticks = 0

        self._in_flight = threading.Lock()
        self._counter_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # =========================================================================
    # TICKS
    # =========================================================================

    def tick(self, series_map: Dict[str, object]) -> Optional[MonitorRecord]:
        """
        Process one observation of every series.

        Returns None when the previous tick is still in flight.
        """
        if not self._in_flight.acquire(blocking=False):
            with self._counter_lock:
                self.skipped_ticks += 1
            logger.warning("Monitor tick skipped: previous tick still in flight")
            return None
        try:
            return self._run_tick(series_map)
        finally:
            self._in_flight.release()

    def _run_tick(self, series_map: Dict[str, object]) -> MonitorRecord:
        record = MonitorRecord(timestamp=pd.Timestamp.now())
        for symbol, series in series_map.items():
            state = self.states.setdefault(symbol, DetectorState(symbol, self.timeframe))
            try:
                detection = self.detector.update(state, series)
            except AnalyticsError as e:
                logger.warning(f"{symbol}: monitor update failed: {e.message}")
                record.errors[symbol] = e.to_dict()
                continue
            record.detections[symbol] = detection
            if detection.signals:
                aggregated = self.aggregator.aggregate(detection.signals)
                record.aggregated[symbol] = aggregated
                alert = self._alert_for(symbol, aggregated)
                if alert is not None:
                    record.alerts.append(alert)

        for alert in record.alerts:
            dispatch(self.sinks, alert, self.destinations)

        self.history.append(record)
        logger.info(f"Monitor tick: {len(record.detections)} symbols, "
                    f"{record.signal_count} signals, {len(record.alerts)} alerts")
        return record

    def _alert_for(self, symbol: str, aggregated: AggregatedSignal) -> Optional[Alert]:
        if not aggregated.is_actionable or aggregated.confidence < self.config.min_alert_confidence:
            return None
        strong = aggregated.direction in (SignalType.STRONG_BUY, SignalType.STRONG_SELL)
        return Alert(
            severity=AlertSeverity.WARNING if strong else AlertSeverity.INFO,
            title=f"{symbol} {aggregated.direction.name}",
            message=(f"score {aggregated.score:+.2f}, confidence {aggregated.confidence:.0f}% "
                     f"from {aggregated.signal_count} signals"),
            symbol=symbol,
            source="SignalMonitor",
            payload=aggregated.to_dict()
        )

    # =========================================================================
    # STATE
    # =========================================================================

    def recent(self, n: int = 10) -> List[MonitorRecord]:
        return list(self.history)[-n:]

    def reset(self, symbol: Optional[str] = None):
        """Forget detector state (all symbols, or one)."""
        if symbol is None:
            self.states.clear()
        else:
            self.states.pop(symbol, None)

    # =========================================================================
    # BACKGROUND POLLING
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, source: Callable[[], Dict[str, object]], interval: Optional[float] = None):
        """Poll ``source`` every ``interval`` seconds on a daemon thread."""
        if self.running:
            logger.warning("Monitor already running")
            return
        interval = self.config.check_interval_seconds if interval is None else interval
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, args=(source, interval), daemon=True)
        self._thread.start()
        logger.info(f"Signal monitor started (every {interval}s)")

    def stop(self, timeout: float = 5.0):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Signal monitor stopped")

    def _loop(self, source: Callable[[], Dict[str, object]], interval: float):
        while not self._stop_event.is_set():
            try:
                self.tick(source())
            except Exception as e:
                logger.error(f"Monitor poll failed: {e}")
            self._stop_event.wait(interval)
