from typing import Optional

from pydantic import BaseModel

from shopflow.models.payment import PaymentStatus


class PaymentNotification(BaseModel):
    """Gateway webhook body; only the fields the saga needs are declared."""
    order_id: str
    status_code: str
    gross_amount: str
    signature_key: str
    transaction_status: str
    fraud_status: Optional[str] = None


class PaymentNotificationResponse(BaseModel):
    order_id: int
    status: PaymentStatus
