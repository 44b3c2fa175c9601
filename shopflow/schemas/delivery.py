from pydantic import BaseModel

from shopflow.models.delivery import DeliveryStatus


class DeliveryStatusUpdate(BaseModel):
    """Schema for updating a delivery status."""
    status: DeliveryStatus


class DeliveryResponse(BaseModel):
    id: int
    order_id: int
    status: DeliveryStatus
