"""Account aggregate — the pipeline's view of an actor.

Authentication and onboarding live in the identity service. The pipeline
only needs to know an actor's role and whether the account may act, and it
must be able to suspend an account when the fraud gate blocks it.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, String

from marketplace.domain import marketplace
from marketplace.identity.events import AccountReactivated, AccountSuspended


class Role(Enum):
    BUYER = "buyer"
    VENDOR = "vendor"
    DRIVER = "driver"
    ADMIN = "admin"


class AccountStatus(Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


@marketplace.aggregate
class Account:
    role = String(required=True, choices=Role)
    status = String(choices=AccountStatus, default=AccountStatus.ACTIVE.value)
    display_name = String(max_length=255)
    phone = String(max_length=20)
    email = String(max_length=255)
    suspension_reason = String(max_length=500)
    suspended_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, account_id, role, display_name=None, phone=None, email=None, status=None):
        now = datetime.now(UTC)
        return cls(
            id=account_id,
            role=role,
            status=status or AccountStatus.ACTIVE.value,
            display_name=display_name,
            phone=phone,
            email=email,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value

    def has_role(self, *roles: Role) -> bool:
        return self.role in {role.value for role in roles}

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def suspend(self, reason):
        if self.status != AccountStatus.ACTIVE.value:
            raise ValidationError({"status": ["Only active accounts can be suspended"]})

        now = datetime.now(UTC)
        self.status = AccountStatus.SUSPENDED.value
        self.suspension_reason = reason
        self.suspended_at = now
        self.updated_at = now
        self.raise_(AccountSuspended(account_id=str(self.id), reason=reason, suspended_at=now))

    def reactivate(self):
        if self.status != AccountStatus.SUSPENDED.value:
            raise ValidationError({"status": ["Only suspended accounts can be reactivated"]})

        now = datetime.now(UTC)
        self.status = AccountStatus.ACTIVE.value
        self.suspension_reason = None
        self.suspended_at = None
        self.updated_at = now
        self.raise_(AccountReactivated(account_id=str(self.id), reactivated_at=now))
