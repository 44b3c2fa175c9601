from enum import Enum
from tortoise import fields, models


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    CHALLENGE = "CHALLENGE"  # Captured but flagged for manual fraud review
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Payment(models.Model):
    id = fields.IntField(primary_key=True)
    order_id = fields.IntField(unique=True)
    amount = fields.BigIntField()
    payment_url = fields.CharField(max_length=500)
    snap_token = fields.CharField(max_length=255)
    status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "payments"
        indexes = [
            ("status", "created_at"),  # Expired pending payment sweep
        ]
