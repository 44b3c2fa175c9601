from shopflow.events import streams
from shopflow.events.outbox_utility import event_key
from shopflow.schemas.events import PaymentSucceeded
from shopflow.services import delivery_service

SERVICE = "delivery"
GROUP = streams.group_name(SERVICE)


async def handle_payment_success(event: PaymentSucceeded, entry_id: str):
    """Consumer logic for 'stream:payment:success'. Opens the delivery."""
    await delivery_service.create_delivery(
        event.order_id, key=event_key(GROUP, streams.PAYMENT_SUCCESS, entry_id)
    )


SUBSCRIPTIONS = {
    streams.PAYMENT_SUCCESS: handle_payment_success,
}
