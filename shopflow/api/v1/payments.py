import logging
from fastapi import APIRouter, HTTPException
from shopflow.schemas.payment import PaymentNotification, PaymentNotificationResponse
from shopflow.schemas.response import SuccessResponse
from shopflow.services.payment_service import handle_notification, verify_signature

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("/notifications", response_model=SuccessResponse)
async def payment_notification_endpoint(payload: PaymentNotification):
    """
    Gateway webhook. Verifies the signature, then records the transaction
    status; success and failure are announced to the other services.
    """
    verify_signature(payload.order_id, payload.status_code, payload.gross_amount, payload.signature_key)
    try:
        order_id = int(payload.order_id)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid order_id {payload.order_id}")

    payment_status = await handle_notification(order_id, payload.transaction_status, payload.fraud_status)
    data = PaymentNotificationResponse(order_id=order_id, status=payment_status).model_dump()
    return SuccessResponse(data=data)
