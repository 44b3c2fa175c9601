import logging
from typing import Dict, List, Optional

from tortoise.transactions import in_transaction

from shopflow.core.errors import NotFoundError
from shopflow.events import streams
from shopflow.events.outbox_utility import already_processed, create_outbox_event, mark_processed
from shopflow.models.order import Order, OrderItem, OrderStatus
from shopflow.schemas.events import OrderCreated, OrderItemMessage

log = logging.getLogger(__name__)

# Statuses an order may be in for an event to move it to the key status.
# Anything else means the event is a duplicate or arrived after the order
# moved on, and it is ignored.
ALLOWED_SOURCES = {
    OrderStatus.AWAITING_PAYMENT: {OrderStatus.RECEIVED},
    # payment success and delivery can overtake the events before them
    OrderStatus.PAID: {OrderStatus.RECEIVED, OrderStatus.AWAITING_PAYMENT},
    OrderStatus.SHIPPED: {OrderStatus.RECEIVED, OrderStatus.AWAITING_PAYMENT, OrderStatus.PAID},
    OrderStatus.CANCELLED: {OrderStatus.RECEIVED, OrderStatus.AWAITING_PAYMENT},
}


async def place_order(user_id: str, items: List[Dict]) -> Order:
    """
    FAST PATH: Creates Order/OrderItem and the order-created outbox row atomically.
    Stock reservation, payment and delivery follow asynchronously.

    Each item carries product_id, quantity and the name/price snapshot
    looked up by the caller.
    """
    if not items:
        raise ValueError("Order must contain items.")

    async with in_transaction() as conn:
        # 1. Create the Order header
        order = await Order.create(
            user_id=user_id,
            status=OrderStatus.RECEIVED,
            total_amount=0,
            using_db=conn
        )

        total = 0
        event_items = []
        for it in items:
            qty = int(it["quantity"])
            price = int(it["price"])
            if qty <= 0:
                raise ValueError(f"Invalid quantity {qty} for product {it['product_id']}.")

            # 2. Create Order Item line
            await OrderItem.create(
                order=order,
                product_id=int(it["product_id"]),
                name=it.get("name", ""),
                quantity=qty,
                price=price,
                using_db=conn
            )
            total += price * qty
            event_items.append(OrderItemMessage(product_id=int(it["product_id"]), quantity=qty))

        order.total_amount = total
        await order.save(using_db=conn)

        # 3. ATOMIC EVENT: announce the order (stock, cart and payment follow)
        await create_outbox_event(
            aggregate_type="order",
            aggregate_id=order.id,
            status="created",
            stream=streams.ORDER_CREATED,
            event=OrderCreated(
                order_id=order.id,
                user_id=user_id,
                total_amount=total,
                items=event_items,
            ),
            conn=conn
        )

    log.info(f"Order {order.id} received for user {user_id}, total {order.total_amount}")
    return order


async def get_order_by_id(order_id: int) -> Optional[Order]:
    """Fetches order details with items."""
    return await Order.get_or_none(id=order_id).prefetch_related("items")


async def apply_status_event(
    order_id: int,
    new_status: OrderStatus,
    key: Optional[str] = None,
    payment_url: Optional[str] = None,
) -> bool:
    """
    Moves an order to `new_status` in reaction to a consumed event.

    Returns True if the status changed. Duplicate, stale or already-terminal
    events are accepted as no-ops so redelivery never fails the consumer.
    """
    async with in_transaction() as conn:
        if await already_processed(key, conn):
            log.info(f"Idempotency: Event {key} already processed.")
            return False

        order = await Order.filter(id=order_id).select_for_update().using_db(conn).first()
        if not order:
            # raising keeps the entry pending; it is retried until the order is visible
            raise NotFoundError(f"Order {order_id} not found.")

        changed = order.status in ALLOWED_SOURCES[new_status]
        if changed:
            old_status = order.status
            order.status = new_status
            update_fields = ["status", "updated_at"]
            if payment_url is not None:
                order.payment_url = payment_url
                update_fields.append("payment_url")
            await order.save(update_fields=update_fields, using_db=conn)
            log.info(f"Status UPDATE: Order {order_id} moved {old_status.value} -> {new_status.value}.")
        else:
            log.info(f"Order {order_id} is {order.status.value}; ignoring transition to {new_status.value}.")

        await mark_processed(key, conn)
    return changed
