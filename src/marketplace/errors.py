"""Error taxonomy for the settlement pipeline.

Input-shape problems are reported with Protean's ``ValidationError`` so they
flow through the same handlers as field validation. Everything else raises
one of the classes below. Each error carries a ``messages`` dict (field ->
list of messages) in the same shape Protean uses, plus the HTTP status the
API layer answers with.
"""

from protean.exceptions import ValidationError

__all__ = [
    "AlreadyAssigned",
    "AuthorizationError",
    "ConflictError",
    "DeliveryNotAvailable",
    "DriverUnavailable",
    "ExternalServiceError",
    "FraudBlockedError",
    "InsufficientInventory",
    "InsufficientResourceError",
    "InvalidSignature",
    "InvalidStatusTransition",
    "MarketplaceError",
    "NotFoundError",
    "ProductUnavailable",
    "ValidationError",
]


class MarketplaceError(Exception):
    status_code = 400
    field = "error"

    def __init__(self, message: str, field: str | None = None, **details) -> None:
        super().__init__(message)
        self.message = message
        self.messages = {field or self.field: [message]}
        self.details = details

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "messages": self.messages, **self.details}


class NotFoundError(MarketplaceError):
    status_code = 404


class ConflictError(MarketplaceError):
    status_code = 409
    field = "status"


class InsufficientResourceError(MarketplaceError):
    status_code = 409


class AuthorizationError(MarketplaceError):
    status_code = 403
    field = "actor"


class ExternalServiceError(MarketplaceError):
    status_code = 502
    field = "gateway"


class FraudBlockedError(MarketplaceError):
    status_code = 403
    field = "payment"


# ---------------------------------------------------------------------------
# Specific failures
# ---------------------------------------------------------------------------
class ProductUnavailable(ConflictError):
    field = "product_id"

    def __init__(self, product_id: str, name: str | None = None) -> None:
        label = name or product_id
        super().__init__(f'Product "{label}" is no longer available', product_id=str(product_id))


class InsufficientInventory(InsufficientResourceError):
    field = "quantity"

    def __init__(self, product_id: str, requested: int, available: int, name: str | None = None) -> None:
        label = name or product_id
        super().__init__(
            f'Only {available} of "{label}" available',
            product_id=str(product_id),
            requested=requested,
            available=available,
        )
        self.available = available
        self.requested = requested


class InvalidStatusTransition(ConflictError):
    def __init__(self, current: str, target: str, entity: str = "") -> None:
        prefix = f"{entity} " if entity else ""
        super().__init__(
            f"Cannot transition {prefix}from {current} to {target}",
            current_status=current,
            target_status=target,
        )
        self.current = current
        self.target = target


class InvalidSignature(AuthorizationError):
    status_code = 401
    field = "signature"

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(message)


class DeliveryNotAvailable(ConflictError):
    field = "delivery_id"

    def __init__(self, delivery_id: str, status: str) -> None:
        super().__init__(
            f"Delivery {delivery_id} is not available for assignment (status: {status})",
            delivery_id=str(delivery_id),
            current_status=status,
        )


class AlreadyAssigned(ConflictError):
    field = "delivery_id"

    def __init__(self, delivery_id: str, driver_id: str) -> None:
        super().__init__(
            f"Delivery {delivery_id} is already assigned to a driver",
            delivery_id=str(delivery_id),
            driver_id=str(driver_id),
        )


class DriverUnavailable(InsufficientResourceError):
    field = "driver_id"

    def __init__(self, driver_id: str, reason: str = "Driver is not an active driver") -> None:
        super().__init__(reason, driver_id=str(driver_id))
