"""
Live fan-out of audit activity to Server-Sent Events subscribers.
"""

from .broadcast import (
    ACTIVITY_EVENT,
    ALERT_EVENT,
    CONNECTED_COMMENT,
    SSE_HEADERS,
    BroadcastGateway,
    ResponseSink,
    format_sse,
)
from .sse import QueueSink

__all__ = [
    "ACTIVITY_EVENT",
    "ALERT_EVENT",
    "BroadcastGateway",
    "CONNECTED_COMMENT",
    "QueueSink",
    "ResponseSink",
    "SSE_HEADERS",
    "format_sse",
]
