import json
from datetime import datetime, timezone
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shopflow.core.errors import MalformedEntryError
from shopflow.events import streams


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StreamEvent(BaseModel):
    """
    Base for events carried on the bus. Entries are flat string maps, so
    nested values (lists, objects) travel JSON-encoded inside one field.
    """
    model_config = ConfigDict(extra="ignore")

    def to_fields(self) -> Dict[str, str]:
        fields = {}
        for name, value in self.model_dump(mode="json").items():
            if value is None:
                continue
            if isinstance(value, (list, dict)):
                fields[name] = json.dumps(value)
            else:
                fields[name] = str(value)
        return fields

    @classmethod
    def from_fields(cls, fields: Dict[str, str]):
        """Decodes an entry's fields, raising MalformedEntryError on any bad field."""
        try:
            return cls.model_validate(fields)
        except ValidationError as e:
            raise MalformedEntryError(f"Invalid {cls.__name__} entry: {e}") from e


class OrderItemMessage(BaseModel):
    """Schema for a single line of the order-created items array."""
    product_id: int = Field(gt=0)
    quantity: int = Field(gt=0)


class OrderEvent(StreamEvent):
    order_id: int = Field(gt=0)


class OrderCreated(OrderEvent):
    user_id: str = Field(min_length=1)
    total_amount: int = Field(ge=0)
    items: List[OrderItemMessage] = Field(min_length=1)
    created_at: str = Field(default_factory=_now_iso)

    @field_validator("items", mode="before")
    @classmethod
    def decode_items(cls, value):
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError as e:
                raise ValueError(f"items is not valid JSON: {e}")
        return value


class StockReserved(OrderEvent):
    pass


class StockInsufficient(OrderEvent):
    reason: str = ""


class PaymentSucceeded(OrderEvent):
    pass


class PaymentFailed(OrderEvent):
    pass


class DeliveryEvent(OrderEvent):
    delivery_id: int = Field(gt=0)


class DeliveryDelivered(DeliveryEvent):
    pass


class DeliveryFailed(DeliveryEvent):
    pass


# Event type carried by each stream
EVENT_TYPES = {
    streams.ORDER_CREATED: OrderCreated,
    streams.STOCK_RESERVED: StockReserved,
    streams.STOCK_INSUFFICIENT: StockInsufficient,
    streams.PAYMENT_SUCCESS: PaymentSucceeded,
    streams.PAYMENT_FAILED: PaymentFailed,
    streams.DELIVERY_DELIVERED: DeliveryDelivered,
    streams.DELIVERY_FAILED: DeliveryFailed,
}
