"""Domain events for the Account replica."""

from protean.fields import DateTime, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Account")
class AccountSuspended:
    __version__ = 1

    account_id = Identifier(required=True)
    reason = String(max_length=500)
    suspended_at = DateTime(required=True)


@marketplace.event(part_of="Account")
class AccountReactivated:
    __version__ = 1

    account_id = Identifier(required=True)
    reactivated_at = DateTime(required=True)
