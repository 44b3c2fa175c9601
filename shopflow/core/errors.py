class ShopflowError(Exception):
    """Base class for every error raised by shopflow itself."""


class BrokerError(ShopflowError):
    """
    Transient infrastructure failure talking to the Log Store
    (append, read, ack or pending lookup). Nothing is acknowledged;
    the operation is retried on the next cycle.
    """


class MalformedEntryError(ShopflowError):
    """
    An entry is missing a required field or a field cannot be parsed.
    Non-retryable: the worker acknowledges and drops the entry.
    """


class NotFoundError(ShopflowError):
    """A local aggregate referenced by a command or event does not exist."""


class InsufficientStockError(ShopflowError):
    """A stock batch would leave at least one product below zero."""

    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Delta: {requested}, Available: {available}"
        )


class InvalidTransitionError(ShopflowError):
    """A local command asked for a status change the state machine forbids."""


class InvalidSignatureError(ShopflowError):
    """A payment gateway notification failed signature verification."""
