from shopflow.events import streams
from shopflow.events.outbox_utility import event_key
from shopflow.schemas.events import OrderCreated, PaymentFailed, PaymentSucceeded, StockInsufficient
from shopflow.services import cart_service

SERVICE = "cart"
GROUP = streams.group_name(SERVICE)


async def handle_order_created(event: OrderCreated, entry_id: str):
    await cart_service.reserve_for_order(
        event.user_id,
        event.order_id,
        [item.product_id for item in event.items],
        key=event_key(GROUP, streams.ORDER_CREATED, entry_id),
    )


async def handle_payment_success(event: PaymentSucceeded, entry_id: str):
    await cart_service.clear_for_order(event.order_id, key=event_key(GROUP, streams.PAYMENT_SUCCESS, entry_id))


async def handle_payment_failed(event: PaymentFailed, entry_id: str):
    await cart_service.release_for_order(event.order_id, key=event_key(GROUP, streams.PAYMENT_FAILED, entry_id))


async def handle_stock_insufficient(event: StockInsufficient, entry_id: str):
    """The order was cancelled before payment; its lines go back to the cart."""
    await cart_service.release_for_order(event.order_id, key=event_key(GROUP, streams.STOCK_INSUFFICIENT, entry_id))


SUBSCRIPTIONS = {
    streams.ORDER_CREATED: handle_order_created,
    streams.STOCK_INSUFFICIENT: handle_stock_insufficient,
    streams.PAYMENT_SUCCESS: handle_payment_success,
    streams.PAYMENT_FAILED: handle_payment_failed,
}
