import logging
from fastapi import APIRouter, HTTPException, status
from shopflow.schemas.response import SuccessResponse
from shopflow.services.order_service import place_order, get_order_by_id
from shopflow.schemas.order import OrderRequest, OrderPlacementResponse, OrderDetailResponse

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("/", status_code=status.HTTP_202_ACCEPTED, response_model=SuccessResponse)
async def create_order_endpoint(request_data: OrderRequest):
    """
    Places a new order. Returns 202 Accepted because stock, payment and
    delivery are handled asynchronously by the saga.
    """
    items_data = [item.model_dump() for item in request_data.items]
    if not items_data:
        raise HTTPException(status_code=400, detail="Order must contain items.")

    try:
        order = await place_order(user_id=request_data.user_id, items=items_data)
    except ValueError as e:
        log.error(f"Value error placing order: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    log.info(f"Order {order.id} placed successfully for user {request_data.user_id}.")
    data = OrderPlacementResponse(
        order_id=order.id,
        status=order.status,
        total_amount=order.total_amount,
        message="Order Accepted and is being processed."
    ).model_dump()
    return SuccessResponse(data=data)


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: int):
    """Fetches an order; its status shows how far the saga has progressed."""
    order = await get_order_by_id(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    items = [
        {
            "product_id": i.product_id,
            "name": i.name,
            "quantity": i.quantity,
            "price": i.price,
        }
        for i in order.items
    ]
    data = OrderDetailResponse(
        id=order.id,
        status=order.status,
        total_amount=order.total_amount,
        payment_url=order.payment_url,
        items=items,
        created_at=str(order.created_at)
    ).model_dump()
    return SuccessResponse(data=data)
