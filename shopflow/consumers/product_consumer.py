import logging

from shopflow.events import streams
from shopflow.events.outbox_utility import event_key
from shopflow.schemas.events import OrderCreated, PaymentFailed
from shopflow.services import product_service

log = logging.getLogger(__name__)

SERVICE = "product"
GROUP = streams.group_name(SERVICE)


async def handle_order_created(event: OrderCreated, entry_id: str):
    """
    Consumer logic for 'stream:orders:created'. Attempts to reserve stock.
    Insufficient stock is a business outcome, not a failure: it is announced
    on 'stream:stock:insufficient' and the entry is acknowledged.
    """
    log.info(f"--- Worker: RESERVING stock for Order {event.order_id} ---")
    await product_service.reserve_stock(
        event.order_id, event.items, key=event_key(GROUP, streams.ORDER_CREATED, entry_id)
    )


async def handle_payment_failed(event: PaymentFailed, entry_id: str):
    """Consumer logic for 'stream:payment:failed'. Restores reserved stock."""
    log.info(f"--- Worker: RESTORING stock for Order {event.order_id} ---")
    await product_service.release_stock(
        event.order_id, key=event_key(GROUP, streams.PAYMENT_FAILED, entry_id)
    )


SUBSCRIPTIONS = {
    streams.ORDER_CREATED: handle_order_created,
    streams.PAYMENT_FAILED: handle_payment_failed,
}
