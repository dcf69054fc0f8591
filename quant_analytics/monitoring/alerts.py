"""
Alerts and Notification Sinks
=============================
Alert records and the fire-and-forget delivery interface. A sink failure is
logged and never propagates into analysis.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

import pandas as pd

logger = logging.getLogger(__name__)


class AlertSeverity(Enum):
    """Alert severity levels."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Alert:
    """Alert notification."""
    severity: AlertSeverity
    title: str
    message: str
    symbol: Optional[str] = None
    timestamp: pd.Timestamp = field(default_factory=pd.Timestamp.now)
    source: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'severity': self.severity.value,
            'title': self.title,
            'message': self.message,
            'symbol': self.symbol,
            'timestamp': str(self.timestamp),
            'source': self.source,
            'payload': dict(self.payload)
        }


class NotificationSink(ABC):
    """Delivers alerts or reports to a destination (chat id, channel, ...)."""

    @abstractmethod
    def send(self, message: Any, destination: Optional[str] = None) -> None:
        """Deliver ``message``. Implementations may raise; callers log and continue."""


class LoggingNotificationSink(NotificationSink):
    """Writes every message to the log and keeps what was sent."""

    def __init__(self):
        self.sent: List[tuple] = []

    def send(self, message: Any, destination: Optional[str] = None) -> None:
        if isinstance(message, Alert):
            level = logging.WARNING if message.severity != AlertSeverity.INFO else logging.INFO
            text = f"[ALERT] {message.title}: {message.message}"
        else:
            level = logging.INFO
            summary = message.headline() if hasattr(message, 'headline') else message
            text = f"[REPORT] {summary}"
        if destination:
            text = f"{text} -> {destination}"
        logger.log(level, text)
        self.sent.append((message, destination))


class CallbackNotificationSink(NotificationSink):
    """Adapts a plain callable ``fn(message, destination)`` into a sink."""

    def __init__(self, callback: Callable[[Any, Optional[str]], None]):
        self.callback = callback

    def send(self, message: Any, destination: Optional[str] = None) -> None:
        self.callback(message, destination)


def dispatch(sinks: List[NotificationSink], message: Any,
             destinations: Optional[List[str]] = None) -> int:
    """Send to every sink and destination; returns the number of failed deliveries."""
    failures = 0
    for sink in sinks:
        for destination in (destinations or [None]):
            try:
                sink.send(message, destination)
            except Exception as e:
                failures += 1
                logger.error(f"Notification via {type(sink).__name__} to {destination} failed: {e}")
    return failures
