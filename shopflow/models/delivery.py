from enum import Enum
from tortoise import fields, models


class DeliveryStatus(str, Enum):
    RECEIVED = "RECEIVED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class Delivery(models.Model):
    id = fields.IntField(primary_key=True)
    order_id = fields.IntField(unique=True)
    status = fields.CharEnumField(DeliveryStatus, default=DeliveryStatus.RECEIVED)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "deliveries"
