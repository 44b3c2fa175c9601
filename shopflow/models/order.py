from enum import Enum
from tortoise import fields, models


class OrderStatus(str, Enum):
    RECEIVED = "RECEIVED"  # Initial state, waiting for stock reservation
    AWAITING_PAYMENT = "AWAITING_PAYMENT"  # Stock reserved, payment URL issued
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    CANCELLED = "CANCELLED"


class Order(models.Model):
    id = fields.IntField(primary_key=True)
    user_id = fields.CharField(max_length=64)
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.RECEIVED)
    total_amount = fields.BigIntField(default=0)
    payment_url = fields.CharField(max_length=500, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("status",),                 # Status-based filtering
            ("user_id",),                # User order history
            ("status", "created_at"),    # Composite: status with time
        ]


class OrderItem(models.Model):
    id = fields.IntField(primary_key=True)
    order = fields.ForeignKeyField("models.Order", related_name="items")
    product_id = fields.IntField()
    name = fields.CharField(max_length=255)  # Snapshot of name at time of order
    quantity = fields.IntField()
    price = fields.BigIntField()  # Snapshot of price at time of order

    class Meta:
        table = "order_items"
        indexes = [
            ("product_id",),
        ]
