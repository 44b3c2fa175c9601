import logging
from functools import partial
from typing import Optional

from shopflow.core.errors import NotFoundError
from shopflow.events import streams
from shopflow.events.outbox_utility import event_key
from shopflow.models.order import Order, OrderStatus
from shopflow.schemas.events import (
    DeliveryDelivered,
    DeliveryFailed,
    PaymentFailed,
    PaymentSucceeded,
    StockInsufficient,
    StockReserved,
)
from shopflow.services import order_service
from shopflow.services.payment_client import LocalPaymentClient, PaymentClient

log = logging.getLogger(__name__)

SERVICE = "order"
GROUP = streams.group_name(SERVICE)


async def handle_stock_reserved(event: StockReserved, entry_id: str, payment_client: Optional[PaymentClient] = None):
    """
    Consumer logic for 'stream:stock:reserved'.
    Requests a payment URL and moves the Order from RECEIVED to AWAITING_PAYMENT.
    """
    order = await Order.get_or_none(id=event.order_id)
    if not order:
        raise NotFoundError(f"Order {event.order_id} not found.")
    if order.status != OrderStatus.RECEIVED:
        log.info(f"Order {event.order_id} is already {order.status.value}; no payment requested.")
        return

    client = payment_client or LocalPaymentClient()
    # a failure here leaves the order RECEIVED and the entry pending for retry
    payment_url = await client.create_pending_payment(order.id, order.total_amount)
    await order_service.apply_status_event(
        event.order_id,
        OrderStatus.AWAITING_PAYMENT,
        key=event_key(GROUP, streams.STOCK_RESERVED, entry_id),
        payment_url=payment_url,
    )


async def handle_stock_insufficient(event: StockInsufficient, entry_id: str):
    """Consumer logic for 'stream:stock:insufficient'. Cancels the Order."""
    reason = event.reason or "Insufficient stock."
    log.info(f"--- Worker: CANCELLING Order {event.order_id}: {reason} ---")
    await order_service.apply_status_event(
        event.order_id, OrderStatus.CANCELLED, key=event_key(GROUP, streams.STOCK_INSUFFICIENT, entry_id)
    )


async def handle_payment_success(event: PaymentSucceeded, entry_id: str):
    """Consumer logic for 'stream:payment:success'. Marks the Order PAID."""
    await order_service.apply_status_event(
        event.order_id, OrderStatus.PAID, key=event_key(GROUP, streams.PAYMENT_SUCCESS, entry_id)
    )


async def handle_payment_failed(event: PaymentFailed, entry_id: str):
    """Consumer logic for 'stream:payment:failed'. Cancels the Order."""
    await order_service.apply_status_event(
        event.order_id, OrderStatus.CANCELLED, key=event_key(GROUP, streams.PAYMENT_FAILED, entry_id)
    )


async def handle_delivery_delivered(event: DeliveryDelivered, entry_id: str):
    """Consumer logic for 'stream:delivery:delivered'. Marks the Order SHIPPED."""
    await order_service.apply_status_event(
        event.order_id, OrderStatus.SHIPPED, key=event_key(GROUP, streams.DELIVERY_DELIVERED, entry_id)
    )


async def handle_delivery_failed(event: DeliveryFailed, entry_id: str):
    """
    Consumer logic for 'stream:delivery:failed'. There is no compensation for
    a paid order whose delivery failed; it is surfaced for manual follow-up.
    """
    log.warning(
        f"Delivery {event.delivery_id} for Order {event.order_id} failed; "
        f"order left as is for manual follow-up."
    )


def subscriptions(payment_client: Optional[PaymentClient] = None):
    return {
        streams.STOCK_RESERVED: partial(handle_stock_reserved, payment_client=payment_client),
        streams.STOCK_INSUFFICIENT: handle_stock_insufficient,
        streams.PAYMENT_SUCCESS: handle_payment_success,
        streams.PAYMENT_FAILED: handle_payment_failed,
        streams.DELIVERY_DELIVERED: handle_delivery_delivered,
        streams.DELIVERY_FAILED: handle_delivery_failed,
    }
