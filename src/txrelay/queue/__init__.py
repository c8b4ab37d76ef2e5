"""
Sequential transaction queue with pause, retry and cancel.
"""

from .engine import TransactionQueueEngine
from .events import EventRecorder, EventSink, FanOutSink, StructlogSink
from .store import QueueStore

__all__ = [
    "TransactionQueueEngine",
    "QueueStore",
    "EventSink",
    "EventRecorder",
    "FanOutSink",
    "StructlogSink",
]
