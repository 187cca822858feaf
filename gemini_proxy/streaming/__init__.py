"""
Streaming Module Initialization
"""

from gemini_proxy.streaming.aggregator import ResponseAggregator, aggregate
from gemini_proxy.streaming.channel import EventChannel
from gemini_proxy.streaming.stream_adapter import StreamAdapter

__all__ = [
    "EventChannel",
    "ResponseAggregator",
    "StreamAdapter",
    "aggregate",
]
