"""Actor lookup and role checks shared by every command handler."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.errors import AuthorizationError
from marketplace.identity.account import Account, Role


def resolve_actor(actor_id, *roles: Role, allow_suspended: bool = False) -> Account:
    """Load the acting account and check it may act in one of ``roles``.

    Admins pass every role check. Suspended accounts are refused unless
    ``allow_suspended`` is set (used for read-only views).
    """
    if not actor_id:
        raise AuthorizationError("An authenticated actor is required")
    try:
        account = current_domain.repository_for(Account).get(actor_id)
    except ObjectNotFoundError as exc:
        raise AuthorizationError(f"Unknown actor {actor_id}") from exc

    if not allow_suspended and not account.is_active:
        raise AuthorizationError("Account is suspended")
    if roles and not account.is_admin and not account.has_role(*roles):
        allowed = ", ".join(role.value for role in roles)
        raise AuthorizationError(f"Action requires role: {allowed}")
    return account


def require_admin(actor_id) -> Account:
    account = resolve_actor(actor_id)
    if not account.is_admin:
        raise AuthorizationError("Action requires role: admin")
    return account
