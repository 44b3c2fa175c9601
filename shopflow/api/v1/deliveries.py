from fastapi import APIRouter, HTTPException
from shopflow.schemas.delivery import DeliveryResponse, DeliveryStatusUpdate
from shopflow.schemas.response import SuccessResponse
from shopflow.services.delivery_service import get_delivery, update_delivery_status

router = APIRouter()


@router.get("/{delivery_id}", response_model=SuccessResponse)
async def get_delivery_endpoint(delivery_id: int):
    delivery = await get_delivery(delivery_id)
    if not delivery:
        raise HTTPException(status_code=404, detail="Delivery not found")
    data = DeliveryResponse(id=delivery.id, order_id=delivery.order_id, status=delivery.status).model_dump()
    return SuccessResponse(data=data)


@router.patch("/{delivery_id}/status", response_model=SuccessResponse)
async def update_delivery_status_endpoint(delivery_id: int, payload: DeliveryStatusUpdate):
    """
    Updates status (e.g. 'IN_TRANSIT', 'DELIVERED', 'FAILED').
    DELIVERED and FAILED are published to the order service via the outbox.
    """
    delivery = await update_delivery_status(delivery_id, payload.status)
    data = DeliveryResponse(id=delivery.id, order_id=delivery.order_id, status=delivery.status).model_dump()
    return SuccessResponse(data=data)
