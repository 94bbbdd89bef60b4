"""Event logger factory.

``get_event_logger()`` returns the process-wide ``EventLogger``; tests swap
the sink with ``set_event_sink()``.
"""

from marketplace.audit.logger import EventLogger
from marketplace.audit.sink import EventRecord, EventSink, MemorySink, StructlogSink

__all__ = [
    "EventLogger",
    "EventRecord",
    "EventSink",
    "MemorySink",
    "StructlogSink",
    "get_event_logger",
    "reset_event_logger",
    "set_event_sink",
]

_current_logger: EventLogger | None = None


def get_event_logger() -> EventLogger:
    """Return the current event logger. Defaults to a structlog sink."""
    global _current_logger
    if _current_logger is None:
        _current_logger = EventLogger(StructlogSink())
    return _current_logger


def set_event_sink(sink: EventSink) -> EventLogger:
    """Route event records to ``sink`` and return the logger using it."""
    global _current_logger
    _current_logger = EventLogger(sink)
    return _current_logger


def reset_event_logger() -> None:
    global _current_logger
    _current_logger = None
