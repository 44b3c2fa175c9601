import logging
from typing import Optional

from tortoise.transactions import in_transaction

from shopflow.core.errors import InvalidTransitionError, NotFoundError
from shopflow.events import streams
from shopflow.events.outbox_utility import already_processed, create_outbox_event, mark_processed
from shopflow.models.delivery import Delivery, DeliveryStatus
from shopflow.schemas.events import DeliveryDelivered, DeliveryFailed

log = logging.getLogger(__name__)

FINAL_STATUSES = {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}


async def create_delivery(order_id: int, key: Optional[str] = None) -> Delivery:
    """Opens a RECEIVED delivery for a paid order. One delivery per order."""
    async with in_transaction() as conn:
        if await already_processed(key, conn):
            return await Delivery.get(order_id=order_id).using_db(conn)
        delivery, created = await Delivery.get_or_create(
            order_id=order_id,
            defaults={"status": DeliveryStatus.RECEIVED},
            using_db=conn,
        )
        await mark_processed(key, conn)

    if created:
        log.info(f"Delivery {delivery.id} created for order {order_id} after payment success.")
    else:
        log.info(f"Delivery for order {order_id} already exists ({delivery.id}).")
    return delivery


async def get_delivery(delivery_id: int) -> Optional[Delivery]:
    return await Delivery.get_or_none(id=delivery_id)


async def update_delivery_status(delivery_id: int, status: DeliveryStatus) -> Delivery:
    """
    Local command from the courier side. DELIVERED and FAILED are announced
    through the outbox in the same transaction as the status change.
    """
    async with in_transaction() as conn:
        delivery = await Delivery.filter(id=delivery_id).select_for_update().using_db(conn).first()
        if not delivery:
            raise NotFoundError(f"Delivery {delivery_id} not found.")
        if delivery.status in FINAL_STATUSES:
            raise InvalidTransitionError(
                f"Delivery is already in a final state: {delivery.status.value}. Status cannot be updated."
            )

        delivery.status = status
        await delivery.save(update_fields=["status", "updated_at"], using_db=conn)

        if status in FINAL_STATUSES:
            if status == DeliveryStatus.DELIVERED:
                stream = streams.DELIVERY_DELIVERED
                event = DeliveryDelivered(order_id=delivery.order_id, delivery_id=delivery.id)
            else:
                stream = streams.DELIVERY_FAILED
                event = DeliveryFailed(order_id=delivery.order_id, delivery_id=delivery.id)
            await create_outbox_event(
                aggregate_type="delivery",
                aggregate_id=delivery.id,
                related_id=delivery.order_id,
                status=status.value.lower(),
                stream=stream,
                event=event,
                conn=conn,
            )

    log.info(f"Delivery {delivery_id} for order {delivery.order_id} is now {status.value}")
    return delivery
