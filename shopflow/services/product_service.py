import logging
from typing import Any, Dict, List, Optional

from tortoise.transactions import in_transaction

from shopflow.core.errors import InsufficientStockError
from shopflow.events import streams
from shopflow.events.outbox_utility import already_processed, create_outbox_event, mark_processed
from shopflow.models.product import Product, StockReservation
from shopflow.schemas.events import OrderItemMessage, StockInsufficient, StockReserved

log = logging.getLogger(__name__)


async def apply_stock_deltas(deltas: Dict[int, int], conn: Any) -> List[Product]:
    """
    Applies signed stock deltas (negative reserves, positive releases) inside
    the caller's transaction. If any product is unknown or would go negative,
    InsufficientStockError is raised before anything is written.
    """
    # CRITICAL: Lock rows so concurrent reservations cannot read the same stock level
    products = await Product.filter(id__in=list(deltas)).select_for_update().using_db(conn)
    by_id = {p.id: p for p in products}

    for product_id, delta in deltas.items():
        product = by_id.get(product_id)
        available = product.stock if product else 0
        if product is None or available + delta < 0:
            raise InsufficientStockError(product_id, delta, available)

    for product_id, delta in deltas.items():
        product = by_id[product_id]
        product.stock += delta
        await product.save(update_fields=["stock", "updated_at"], using_db=conn)
    return products


def _reservation_deltas(items: List[OrderItemMessage]) -> Dict[int, int]:
    deltas: Dict[int, int] = {}
    for item in items:
        # For stock deduction, we use negative quantity
        deltas[item.product_id] = deltas.get(item.product_id, 0) - item.quantity
    return deltas


async def reserve_stock(order_id: int, items: List[OrderItemMessage], key: Optional[str] = None) -> bool:
    """
    Reserves stock for an order and announces the outcome. Stock-reserved and
    stock-insufficient are mutually exclusive results of one attempt.
    Returns True when the stock was reserved.
    """
    deltas = _reservation_deltas(items)
    try:
        async with in_transaction() as conn:
            if await already_processed(key, conn):
                return True
            # a republished order-created must not reserve twice
            if await StockReservation.filter(order_id=order_id).using_db(conn).exists():
                log.info(f"Stock for order {order_id} already reserved, skipping duplicate.")
                await mark_processed(key, conn)
                return True

            await apply_stock_deltas(deltas, conn)
            for product_id, delta in deltas.items():
                await StockReservation.create(
                    order_id=order_id, product_id=product_id, quantity=-delta, using_db=conn
                )
            await mark_processed(key, conn)
            await create_outbox_event(
                aggregate_type="order",
                aggregate_id=order_id,
                status="reserved",
                stream=streams.STOCK_RESERVED,
                event=StockReserved(order_id=order_id),
                conn=conn,
            )
    except InsufficientStockError as e:
        log.warning(f"Failed to reserve stock for order {order_id}: {e}")
        async with in_transaction() as conn:
            if await already_processed(key, conn):
                return False
            await mark_processed(key, conn)
            await create_outbox_event(
                aggregate_type="order",
                aggregate_id=order_id,
                status="insufficient",
                stream=streams.STOCK_INSUFFICIENT,
                event=StockInsufficient(order_id=order_id, reason=str(e)),
                conn=conn,
            )
        return False

    log.info(f"SUCCESS: Stock reserved for order {order_id}")
    return True


async def release_stock(order_id: int, key: Optional[str] = None) -> int:
    """
    Gives back every unreleased unit held for an order (compensation for a
    failed payment). Returns the number of units released.
    """
    async with in_transaction() as conn:
        if await already_processed(key, conn):
            return 0
        reservations = await StockReservation.filter(order_id=order_id, released=False).using_db(conn)
        deltas: Dict[int, int] = {}
        for reservation in reservations:
            deltas[reservation.product_id] = deltas.get(reservation.product_id, 0) + reservation.quantity

        if deltas:
            await apply_stock_deltas(deltas, conn)
            await StockReservation.filter(id__in=[r.id for r in reservations]).using_db(conn).update(released=True)
        await mark_processed(key, conn)

    released = sum(deltas.values())
    if released:
        log.info(f"Stock released for order {order_id}: {released} unit(s)")
    else:
        log.info(f"No reserved stock to release for order {order_id}")
    return released
