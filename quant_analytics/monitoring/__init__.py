"""
Monitoring Module
=================
"""
from .alerts import (
    Alert,
    AlertSeverity,
    NotificationSink,
    LoggingNotificationSink,
    CallbackNotificationSink,
    dispatch
)
from .summarizer import NaturalLanguageSummarizer, TemplateSummarizer, build_prompt
from .monitor import SignalMonitor, MonitorRecord

__all__ = [
    'Alert',
    'AlertSeverity',
    'NotificationSink',
    'LoggingNotificationSink',
    'CallbackNotificationSink',
    'dispatch',
    'NaturalLanguageSummarizer',
    'TemplateSummarizer',
    'build_prompt',
    'SignalMonitor',
    'MonitorRecord'
]
