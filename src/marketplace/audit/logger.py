"""Fire-and-forget event logging.

A failing sink never fails the business operation: the record is written to
the local structlog fallback instead and ``log`` returns ``None``.
"""

import structlog

from marketplace.audit.sink import EventRecord, EventSink

logger = structlog.get_logger(__name__)

SEVERITIES = ("info", "warning", "error", "critical")


class EventLogger:
    def __init__(self, sink: EventSink) -> None:
        self.sink = sink

    def log(
        self,
        event_type: str,
        category: str,
        actor_id: str | None = None,
        target_id: str | None = None,
        target_type: str | None = None,
        event_data: dict | None = None,
        severity: str = "info",
        success: bool = True,
    ) -> EventRecord | None:
        record = EventRecord(
            event_type=event_type,
            category=category,
            actor_id=str(actor_id) if actor_id is not None else None,
            target_id=str(target_id) if target_id is not None else None,
            target_type=target_type,
            event_data=event_data or {},
            severity=severity if severity in SEVERITIES else "info",
            success=success,
        )
        try:
            self.sink.write(record)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "event_log_fallback",
                error=str(exc),
                **record.as_dict(),
            )
            return None
        return record

    # Convenience wrappers for the categories the pipeline reports
    def order(self, event_type: str, order_id: str, actor_id: str | None = None, **data) -> EventRecord | None:
        return self.log(event_type, "order", actor_id=actor_id, target_id=order_id, target_type="order", event_data=data)

    def payment(
        self,
        event_type: str,
        payment_reference: str,
        actor_id: str | None = None,
        severity: str = "info",
        success: bool = True,
        **data,
    ) -> EventRecord | None:
        return self.log(
            event_type,
            "payment",
            actor_id=actor_id,
            target_id=payment_reference,
            target_type="payment",
            event_data=data,
            severity=severity,
            success=success,
        )

    def delivery(self, event_type: str, delivery_id: str, actor_id: str | None = None, **data) -> EventRecord | None:
        return self.log(
            event_type, "delivery", actor_id=actor_id, target_id=delivery_id, target_type="delivery", event_data=data
        )

    def security(self, event_type: str, actor_id: str | None, severity: str = "warning", **data) -> EventRecord | None:
        return self.log(
            event_type,
            "security",
            actor_id=actor_id,
            target_id=actor_id,
            target_type="user",
            event_data=data,
            severity=severity,
        )

    def admin_action(self, action: str, admin_id: str | None, target_id: str, target_type: str, **data):
        return self.log(
            action,
            "admin",
            actor_id=admin_id,
            target_id=target_id,
            target_type=target_type,
            event_data=data,
            severity="warning",
        )
