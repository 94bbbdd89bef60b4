"""Request-scoped inputs shared by the routers."""

from fastapi import Header, Request

from marketplace.errors import AuthorizationError


def actor_id(x_actor_id: str | None = Header(default=None)) -> str:
    """The acting account, as asserted by the session layer in front of the API."""
    if not x_actor_id:
        raise AuthorizationError("An authenticated actor is required")
    return x_actor_id


def client_ip(request: Request, x_forwarded_for: str | None = Header(default=None)) -> str | None:
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None
