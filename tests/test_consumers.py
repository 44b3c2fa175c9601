import asyncio
import pytest
from unittest.mock import patch, AsyncMock

from shopflow.consumers import order_status_consumer, product_consumer
from shopflow.consumers.runner import ServiceRuntime, build_runtime, build_workers, parse_services
from shopflow.core.errors import NotFoundError
from shopflow.events import streams
from shopflow.models.order import OrderStatus
from shopflow.schemas.events import OrderCreated, OrderItemMessage, StockReserved
from shopflow.services.order_service import place_order
from shopflow.services.payment_client import PaymentClient


class FailingPaymentClient(PaymentClient):
    async def create_pending_payment(self, order_id, amount):
        raise ConnectionError("payment service unavailable")


class TestConsumers:

    @pytest.mark.asyncio
    async def test_stock_reservation_uses_entry_key(self):
        with patch('shopflow.services.product_service.reserve_stock', new_callable=AsyncMock) as mock_reserve:
            event = OrderCreated(order_id=5, user_id="u1", total_amount=500, items=[OrderItemMessage(product_id=1, quantity=2)])
            await product_consumer.handle_order_created(event, "1-0")

            mock_reserve.assert_awaited_once_with(5, event.items, key="product-group:stream:orders:created:1-0")

    @pytest.mark.asyncio
    async def test_payment_url_failure_keeps_order_received(self, db):
        order = await place_order("u1", [{"product_id": 1, "quantity": 1, "name": "Mouse", "price": 250}])

        with pytest.raises(ConnectionError):
            await order_status_consumer.handle_stock_reserved(
                StockReserved(order_id=order.id), "1-0", payment_client=FailingPaymentClient()
            )
        await order.refresh_from_db()
        assert order.status == OrderStatus.RECEIVED

    @pytest.mark.asyncio
    async def test_stock_reserved_for_unknown_order_raises(self, db):
        with pytest.raises(NotFoundError):
            await order_status_consumer.handle_stock_reserved(StockReserved(order_id=99), "1-0")

    @pytest.mark.asyncio
    async def test_stale_stock_reserved_requests_no_payment(self, db):
        order = await place_order("u1", [{"product_id": 1, "quantity": 1, "name": "Mouse", "price": 250}])
        order.status = OrderStatus.CANCELLED
        await order.save()

        client = AsyncMock(spec=PaymentClient)
        await order_status_consumer.handle_stock_reserved(StockReserved(order_id=order.id), "1-0", payment_client=client)
        client.create_pending_payment.assert_not_called()


class TestRunner:

    def test_parse_services(self):
        assert parse_services(["all"]) == ["order", "product", "payment", "delivery", "cart"]
        assert parse_services([" order", "cart "]) == ["order", "cart"]
        with pytest.raises(ValueError):
            parse_services(["inventory"])

    def test_build_workers_per_subscription(self, store):
        workers = build_workers("product", store)
        assert {w.stream for w in workers} == {streams.ORDER_CREATED, streams.PAYMENT_FAILED}
        assert {w.group for w in workers} == {"product-group"}
        assert {w.consumer for w in workers} == {"product-worker-1"}
        cart = build_workers("cart", store)
        assert {w.stream for w in cart} == {
            streams.ORDER_CREATED, streams.STOCK_INSUFFICIENT, streams.PAYMENT_SUCCESS, streams.PAYMENT_FAILED,
        }
        # payment only exposes commands and periodic jobs
        assert build_workers("payment", store) == []

    def test_outbox_relay_only_for_outbox_services(self, store):
        assert build_runtime(["cart"], store).outbox is None
        runtime = build_runtime(["payment"], store)
        assert runtime.outbox is not None
        assert len(runtime.jobs) == 1

    @pytest.mark.asyncio
    async def test_runtime_start_and_stop(self, db, store):
        runtime = build_runtime(["order", "delivery"], store, block_ms=10)
        await runtime.start()
        await asyncio.sleep(0.05)
        await asyncio.wait_for(runtime.stop(), 1)

        for worker in runtime.workers:
            assert await store.pending(worker.stream, worker.group) == 0

    @pytest.mark.asyncio
    async def test_runtime_without_tasks_stops(self):
        runtime = ServiceRuntime([])
        await runtime.start()
        await runtime.stop()
        assert runtime.stop_event.is_set()
