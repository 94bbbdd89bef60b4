"""Identity synchronisation — commands and handler.

Mirrors accounts from the identity service; admins can also suspend and
reactivate directly.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.domain import marketplace
from marketplace.errors import ConflictError, NotFoundError
from marketplace.identity.account import Account, Role
from marketplace.identity.actors import require_admin


@marketplace.command(part_of="Account")
class RegisterAccount:
    account_id = Identifier(required=True)
    role = String(required=True, choices=Role)
    display_name = String(max_length=255)
    phone = String(max_length=20)
    email = String(max_length=255)


@marketplace.command(part_of="Account")
class SuspendAccount:
    account_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@marketplace.command(part_of="Account")
class ReactivateAccount:
    account_id = Identifier(required=True)
    admin_id = Identifier(required=True)


def load_account(account_id) -> Account:
    try:
        return current_domain.repository_for(Account).get(account_id)
    except ObjectNotFoundError as exc:
        raise NotFoundError(f"Account {account_id} not found", field="account_id") from exc


@marketplace.command_handler(part_of=Account)
class AccountHandler:
    @handle(RegisterAccount)
    def register_account(self, command):
        repo = current_domain.repository_for(Account)
        try:
            repo.get(command.account_id)
        except ObjectNotFoundError:
            pass
        else:
            raise ConflictError(f"Account {command.account_id} is already registered", field="account_id")

        account = Account.register(
            account_id=command.account_id,
            role=command.role,
            display_name=command.display_name,
            phone=command.phone,
            email=command.email,
        )
        repo.add(account)
        return str(account.id)

    @handle(SuspendAccount)
    def suspend_account(self, command):
        require_admin(command.admin_id)
        account = load_account(command.account_id)
        account.suspend(command.reason)
        current_domain.repository_for(Account).add(account)

        get_event_logger().admin_action(
            "user_suspended", command.admin_id, str(account.id), "user", reason=command.reason
        )

    @handle(ReactivateAccount)
    def reactivate_account(self, command):
        require_admin(command.admin_id)
        account = load_account(command.account_id)
        account.reactivate()
        current_domain.repository_for(Account).add(account)

        get_event_logger().admin_action("user_reactivated", command.admin_id, str(account.id), "user")
