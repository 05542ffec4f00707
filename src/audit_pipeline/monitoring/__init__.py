"""
Real-time activity monitoring.

Usage:
    >>> from audit_pipeline.monitoring import ActivityMonitor
    >>>
    >>> monitor = ActivityMonitor()
    >>> monitor.on_alert(lambda alert: print(alert.reason))
    >>> monitor.record(event)
"""

from .bus import Channel, Handler, MessageBus
from .monitor import HIGH_VOLUME_REASON, ActivityMonitor, repeated_failures_reason

__all__ = [
    "ActivityMonitor",
    "Channel",
    "Handler",
    "HIGH_VOLUME_REASON",
    "MessageBus",
    "repeated_failures_reason",
]
