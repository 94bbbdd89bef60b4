"""Behavioural signals the fraud gate scores against.

``ActorActivity`` keeps one row per screened attempt (who, from where, on
which device). ``BlockedAddress`` is the IP reputation list admins maintain.
"""

from datetime import UTC, datetime, timedelta

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.aggregate
class ActorActivity:
    actor_id = Identifier(required=True)
    action = String(required=True, max_length=50)
    ip_address = String(max_length=45)
    device_fingerprint = String(max_length=255)
    amount = Integer(default=0)
    occurred_at = DateTime(required=True)

    @classmethod
    def record(cls, actor_id, action, ip_address=None, device_fingerprint=None, amount=0):
        return cls(
            actor_id=actor_id,
            action=action,
            ip_address=ip_address,
            device_fingerprint=device_fingerprint,
            amount=amount or 0,
            occurred_at=datetime.now(UTC),
        )


@marketplace.repository(part_of=ActorActivity)
class ActorActivityRepository:
    def for_actor(self, actor_id) -> list[ActorActivity]:
        return self._dao.query.filter(actor_id=str(actor_id)).all().items

    def recent_for_actor(self, actor_id, window: timedelta, action=None) -> list[ActorActivity]:
        since = datetime.now(UTC) - window
        return [
            activity
            for activity in self.for_actor(actor_id)
            if activity.occurred_at >= since and (action is None or activity.action == action)
        ]

    def actors_on_device(self, device_fingerprint) -> set[str]:
        rows = self._dao.query.filter(device_fingerprint=device_fingerprint).all().items
        return {str(row.actor_id) for row in rows}


@marketplace.aggregate
class BlockedAddress:
    ip_address = String(required=True, max_length=45)
    reason = String(max_length=500)
    blocked_by = Identifier()
    created_at = DateTime()


@marketplace.repository(part_of=BlockedAddress)
class BlockedAddressRepository:
    def is_blocked(self, ip_address) -> bool:
        if not ip_address:
            return False
        return bool(self._dao.query.filter(ip_address=ip_address).all().items)
