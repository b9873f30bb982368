"""Error types raised by the ticketing services.

Cart and customer validation problems are reported with Django's
``ValidationError``; the classes below cover lookups, capacity, and
infrastructure failures that callers need to tell apart.
"""


class BoxOfficeError(Exception):
    """Base class for ticketing errors."""


class NotFound(BoxOfficeError):
    """A referenced order or category does not exist."""


class OrderNotFound(NotFound):
    """No order exists with the given id."""


class CategoryNotFound(NotFound):
    """No ticket category exists with the given id."""


class CapacityExceeded(BoxOfficeError):
    """Issuing an order would sell more seats than a category holds."""


class TransientStoreError(BoxOfficeError):
    """The database could not complete the transaction; the call may be retried."""


class RedemptionCodeExhausted(BoxOfficeError):
    """Every attempt to mint a unique redemption code collided."""


class NotificationFailure(BoxOfficeError):
    """Sending the order confirmation failed after tickets were committed."""
