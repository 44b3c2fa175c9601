"""Stream names of the inter-service bus. One stream per logical event type."""

ORDER_CREATED = "stream:orders:created"
STOCK_RESERVED = "stream:stock:reserved"
STOCK_INSUFFICIENT = "stream:stock:insufficient"
PAYMENT_SUCCESS = "stream:payment:success"
PAYMENT_FAILED = "stream:payment:failed"
DELIVERY_DELIVERED = "stream:delivery:delivered"
DELIVERY_FAILED = "stream:delivery:failed"

ALL_STREAMS = (
    ORDER_CREATED,
    STOCK_RESERVED,
    STOCK_INSUFFICIENT,
    PAYMENT_SUCCESS,
    PAYMENT_FAILED,
    DELIVERY_DELIVERED,
    DELIVERY_FAILED,
)

DLQ_SUFFIX = ":dlq"


def dlq_stream(stream: str) -> str:
    """Name of the dead-letter sibling of a stream."""
    return stream + DLQ_SUFFIX


def group_name(service: str) -> str:
    return f"{service}-group"


def consumer_name(service: str) -> str:
    # single fixed consumer per group
    return f"{service}-worker-1"
