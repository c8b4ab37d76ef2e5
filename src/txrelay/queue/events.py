"""
Notification sinks for queue events.

A sink is any callable taking a QueueEvent. The engine does not know how
events are displayed.
"""

from typing import Callable

import structlog

from ..models import EventKind, QueueEvent

logger = structlog.get_logger()

EventSink = Callable[[QueueEvent], None]


class StructlogSink:
    """Writes events to the structlog stream; refusals and failures as warnings."""

    def __call__(self, event: QueueEvent) -> None:
        log = logger.warning if event.is_refusal or event.kind == EventKind.TX_FAILED else logger.info
        log(
            event.message,
            kind=event.kind.value,
            transaction_id=event.transaction_id,
            reason=event.reason.value if event.reason else None,
        )


class EventRecorder:
    """Keeps every event in memory, e.g. for a notification center or tests."""

    def __init__(self):
        self.events: list[QueueEvent] = []

    def __call__(self, event: QueueEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [e.kind.value for e in self.events]

    def clear(self) -> None:
        self.events.clear()


class FanOutSink:
    """Forwards each event to several sinks. A failing sink does not stop the others."""

    def __init__(self, *sinks: EventSink):
        self.sinks = list(sinks)

    def __call__(self, event: QueueEvent) -> None:
        for sink in self.sinks:
            try:
                sink(event)
            except Exception as e:
                logger.error("Event sink failed", kind=event.kind.value, error=str(e))
