"""Event-logging collaborator port.

The pipeline reports every state transition to an external event-logging
service. ``EventSink`` is that service's boundary; adapters decide where the
records go.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EventRecord:
    event_type: str
    category: str
    actor_id: str | None = None
    target_id: str | None = None
    target_type: str | None = None
    event_data: dict = field(default_factory=dict)
    severity: str = "info"
    success: bool = True
    recorded_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict:
        data = asdict(self)
        data["recorded_at"] = self.recorded_at.isoformat()
        return data


class EventSink(ABC):
    """Where event records are delivered."""

    @abstractmethod
    def write(self, record: EventRecord) -> None: ...


class StructlogSink(EventSink):
    """Emit each record as a structured log line. Default in every environment."""

    def write(self, record: EventRecord) -> None:
        logger.info("audit_event", **record.as_dict())


class MemorySink(EventSink):
    """Keep records in process; backs the admin audit views and tests."""

    def __init__(self) -> None:
        self._records: list[EventRecord] = []
        self._lock = threading.Lock()

    def write(self, record: EventRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self, category: str | None = None, event_type: str | None = None) -> list[EventRecord]:
        with self._lock:
            found = list(self._records)
        if category:
            found = [r for r in found if r.category == category]
        if event_type:
            found = [r for r in found if r.event_type == event_type]
        return found

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
