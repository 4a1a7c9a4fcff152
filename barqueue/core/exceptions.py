"""
Error taxonomy for the ordering core.

Every domain error carries the HTTP status the API layer answers with, so
route handlers can simply let them propagate to the exception handler
registered in ``barqueue.main``.
"""

from typing import Optional


class BarQueueError(Exception):
    """Base class for all ordering errors."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class UnresolvedDrink(BarQueueError):
    """Order text did not match any catalog entry."""

    status_code = 400
    error = "Invalid order"

    def __init__(self, text: str):
        super().__init__(f'No drink on the menu matches "{text}"')
        self.text = text


class OutOfStock(BarQueueError):
    """Stock was at zero when the order tried to take a unit."""

    status_code = 409
    error = "Sold out"

    def __init__(self, canonical_id: str):
        super().__init__(f'"{canonical_id}" is sold out')
        self.canonical_id = canonical_id


class OrderNotFound(BarQueueError):
    status_code = 404
    error = "Order not found"

    def __init__(self, ref):
        super().__init__(f"Order {ref} not found")
        self.ref = ref


class DrinkNotFound(BarQueueError):
    status_code = 404
    error = "Drink not found"

    def __init__(self, drink_id):
        super().__init__(f"Drink {drink_id} not found")
        self.drink_id = drink_id


class DuplicateDrink(BarQueueError):
    status_code = 409
    error = "Duplicate drink"

    def __init__(self, canonical_id: str):
        super().__init__(f'Drink "{canonical_id}" already exists')
        self.canonical_id = canonical_id


class InvalidStockValue(BarQueueError):
    status_code = 400
    error = "Invalid stock value"


class Unauthorized(BarQueueError):
    status_code = 401
    error = "Unauthorized"

    def __init__(self, detail: str = "Missing or invalid admin token"):
        super().__init__(detail)


class CatalogError(BarQueueError):
    """The drink catalog file is missing or malformed."""

    error = "Catalog error"


class TransportFailure(BarQueueError):
    """
    An outbound message or push could not be delivered.

    Raised by transports and caught per recipient by the dispatcher; it is
    never surfaced to the request that triggered the notification.
    """

    status_code = 502
    error = "Transport failure"

    def __init__(
        self,
        provider: str,
        recipient: str,
        detail: str,
        status_code: Optional[int] = None,
    ):
        super().__init__(f"{provider} → {recipient}: {detail}")
        self.provider = provider
        self.recipient = recipient
        self.provider_status = status_code

    @property
    def is_stale_target(self) -> bool:
        """Provider says the delivery target is gone or no longer ours."""
        return self.provider_status in (401, 403, 404, 410)
