import asyncio
from unittest.mock import AsyncMock

import pytest

from shopflow.consumers.dead_letter import DeadLetterRouter, list_dead_letters
from shopflow.consumers.worker import ConsumerGroupWorker, Phase
from shopflow.core.errors import BrokerError
from shopflow.schemas.events import PaymentSucceeded

STREAM = "stream:payment:success"
GROUP = "test-group"


def make_worker(store, handler, **options):
    options.setdefault("block_ms", None)
    options.setdefault("error_backoff", 0.01)
    return ConsumerGroupWorker(
        store,
        stream=STREAM,
        group=GROUP,
        consumer="test-worker-1",
        event_type=PaymentSucceeded,
        handler=handler,
        **options,
    )


async def start_live(worker):
    await worker.ensure_group()
    # empty backlog switches the worker to new entries
    assert await worker.poll_once() == 0
    assert worker.phase is Phase.LIVE


class TestConsumerGroupWorker:

    @pytest.mark.asyncio
    async def test_success_is_acknowledged(self, store):
        handler = AsyncMock()
        worker = make_worker(store, handler)
        await start_live(worker)
        entry_id = await store.append(STREAM, {"order_id": "7"})

        assert await worker.poll_once() == 1

        event, seen_id = handler.call_args.args
        assert event.order_id == 7
        assert seen_id == entry_id
        assert await store.pending(STREAM, GROUP) == 0
        assert worker.stats.acked == 1

    @pytest.mark.asyncio
    async def test_malformed_entry_is_dropped_without_handler(self, store):
        handler = AsyncMock()
        worker = make_worker(store, handler)
        await start_live(worker)
        await store.append(STREAM, {"order_id": "not-a-number"})
        await store.append(STREAM, {"unrelated": "x"})

        await worker.poll_once()

        handler.assert_not_called()
        assert await store.pending(STREAM, GROUP) == 0
        assert worker.stats.dropped == 2

    @pytest.mark.asyncio
    async def test_handler_failure_leaves_entry_pending(self, store):
        handler = AsyncMock(side_effect=RuntimeError("db down"))
        worker = make_worker(store, handler)
        await start_live(worker)
        entry_id = await store.append(STREAM, {"order_id": "7"})

        await worker.poll_once()

        assert await store.pending(STREAM, GROUP) == 1
        assert await store.delivery_count(STREAM, GROUP, entry_id) == 1
        assert worker.stats.failed == 1
        assert worker.stats.acked == 0

    @pytest.mark.asyncio
    async def test_restart_retries_backlog_first(self, store):
        handler = AsyncMock(side_effect=[RuntimeError("boom"), None])
        first = make_worker(store, handler)
        await start_live(first)
        entry_id = await store.append(STREAM, {"order_id": "7"})
        await first.poll_once()

        restarted = make_worker(store, handler)
        assert restarted.phase is Phase.BACKLOG
        assert await restarted.poll_once() == 1

        assert handler.call_args.args[1] == entry_id
        assert await store.pending(STREAM, GROUP) == 0
        # next read finds an empty backlog and goes live
        await restarted.poll_once()
        assert restarted.phase is Phase.LIVE

    @pytest.mark.asyncio
    async def test_poison_entry_is_dead_lettered_on_fifth_delivery(self, store):
        handler = AsyncMock(side_effect=RuntimeError("always fails"))
        worker = make_worker(store, handler, retry_budget=5)
        await start_live(worker)
        entry_id = await store.append(STREAM, {"order_id": "7"})
        await worker.poll_once()

        # simulate a restart: keep re-reading the pending backlog
        worker.phase = Phase.BACKLOG
        for _ in range(4):
            assert await worker.poll_once() == 1

        assert handler.await_count == 4
        assert await store.pending(STREAM, GROUP) == 0
        assert worker.stats.dead_lettered == 1

        dead = await list_dead_letters(store, STREAM)
        assert len(dead) == 1
        assert dead[0].fields["original_id"] == entry_id
        assert dead[0].fields["error_reason"] == "Exceeded max retries (5)"
        assert dead[0].fields["order_id"] == "7"
        assert dead[0].fields["failed_at"]

    @pytest.mark.asyncio
    async def test_failed_dead_letter_move_still_acknowledges(self, store):
        handler = AsyncMock(side_effect=RuntimeError("always fails"))
        router = DeadLetterRouter(store)
        worker = make_worker(store, handler, retry_budget=2, dead_letters=router)
        await start_live(worker)
        await store.append(STREAM, {"order_id": "7"})
        await worker.poll_once()

        store.append = AsyncMock(side_effect=BrokerError("connection reset"))
        worker.phase = Phase.BACKLOG
        await worker.poll_once()

        assert await store.pending(STREAM, GROUP) == 0
        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_run_backs_off_on_broker_error_and_stops(self, store):
        handler = AsyncMock()
        worker = make_worker(store, handler)
        # no group yet: every read fails with NOGROUP
        stop = asyncio.Event()
        task = asyncio.create_task(worker.run(stop))
        await asyncio.sleep(0.05)
        assert not task.done()

        stop.set()
        await asyncio.wait_for(task, 1)
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_processes_until_stopped(self, store):
        processed = asyncio.Event()

        async def handler(event, entry_id):
            processed.set()

        worker = make_worker(store, handler, block_ms=20)
        await worker.ensure_group()
        stop = asyncio.Event()
        task = asyncio.create_task(worker.run(stop))
        await store.append(STREAM, {"order_id": "7"})

        await asyncio.wait_for(processed.wait(), 1)
        stop.set()
        await asyncio.wait_for(task, 1)
        assert worker.stats.acked == 1
