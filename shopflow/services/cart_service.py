import logging
from typing import List, Optional

from tortoise.transactions import in_transaction

from shopflow.events.outbox_utility import already_processed, mark_processed
from shopflow.models.cart import CartItem

log = logging.getLogger(__name__)


async def add_item(user_id: str, product_id: int, quantity: int) -> CartItem:
    item, created = await CartItem.get_or_create(
        user_id=user_id, product_id=product_id, defaults={"quantity": quantity}
    )
    if not created:
        item.quantity += quantity
        await item.save(update_fields=["quantity", "updated_at"])
    return item


async def get_cart(user_id: str) -> List[CartItem]:
    return await CartItem.filter(user_id=user_id).order_by("id")


async def reserve_for_order(user_id: str, order_id: int, product_ids: List[int], key: Optional[str] = None) -> int:
    """Holds the user's free cart lines that were checked out into `order_id`."""
    async with in_transaction() as conn:
        if await already_processed(key, conn):
            return 0
        reserved = await CartItem.filter(
            user_id=user_id, product_id__in=product_ids, reserved_order_id__isnull=True
        ).using_db(conn).update(reserved_order_id=order_id)
        await mark_processed(key, conn)
    log.info(f"Reserved {reserved} cart line(s) of user {user_id} for order {order_id}")
    return reserved


async def clear_for_order(order_id: int, key: Optional[str] = None) -> int:
    """Removes the lines bought by a paid order."""
    async with in_transaction() as conn:
        if await already_processed(key, conn):
            return 0
        removed = await CartItem.filter(reserved_order_id=order_id).using_db(conn).delete()
        await mark_processed(key, conn)
    log.info(f"Cleared {removed} cart line(s) for paid order {order_id}")
    return removed


async def release_for_order(order_id: int, key: Optional[str] = None) -> int:
    """Puts the lines of an order whose payment failed back into the cart."""
    async with in_transaction() as conn:
        if await already_processed(key, conn):
            return 0
        released = await CartItem.filter(reserved_order_id=order_id).using_db(conn).update(reserved_order_id=None)
        await mark_processed(key, conn)
    log.info(f"Released {released} cart line(s) held by order {order_id}")
    return released
