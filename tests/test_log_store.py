import asyncio

import pytest

from shopflow.broker.base import GROUP_HISTORY, NEW_ENTRIES, parse_entry_id
from shopflow.broker.memory import TRIM_SLACK, InMemoryLogStore
from shopflow.core.errors import BrokerError


class FrozenClock:
    def __init__(self, now=1700000000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInMemoryLogStore:

    @pytest.mark.asyncio
    async def test_ids_are_monotonic_within_one_millisecond(self):
        store = InMemoryLogStore(clock=FrozenClock())
        first = await store.append("s", {"a": "1"})
        second = await store.append("s", {"a": "2"})
        assert first == "1700000000000-0"
        assert second == "1700000000000-1"
        assert parse_entry_id(second) > parse_entry_id(first)

    @pytest.mark.asyncio
    async def test_empty_fields_are_rejected(self, store):
        with pytest.raises(BrokerError):
            await store.append("s", {})

    @pytest.mark.asyncio
    async def test_ensure_group_is_idempotent(self, store):
        assert await store.ensure_group("s", "g") is True
        assert await store.ensure_group("s", "g") is False

    @pytest.mark.asyncio
    async def test_group_starts_after_existing_entries(self, store):
        await store.append("s", {"a": "old"})
        await store.ensure_group("s", "g")
        new_id = await store.append("s", {"a": "new"})

        entries = await store.read_group("s", "g", "c", NEW_ENTRIES, count=10)
        assert [e.id for e in entries] == [new_id]

    @pytest.mark.asyncio
    async def test_read_without_group_raises(self, store):
        with pytest.raises(BrokerError):
            await store.read_group("missing", "g", "c", NEW_ENTRIES)

    @pytest.mark.asyncio
    async def test_history_read_increments_delivery_count(self, store):
        await store.ensure_group("s", "g")
        entry_id = await store.append("s", {"a": "1"})

        await store.read_group("s", "g", "c", NEW_ENTRIES)
        assert await store.delivery_count("s", "g", entry_id) == 1

        again = await store.read_group("s", "g", "c", GROUP_HISTORY)
        assert [e.id for e in again] == [entry_id]
        assert again[0].fields == {"a": "1"}
        assert await store.delivery_count("s", "g", entry_id) == 2

        # a new-entries read never returns what the group already saw
        assert await store.read_group("s", "g", "c", NEW_ENTRIES) == []

    @pytest.mark.asyncio
    async def test_history_only_returns_own_pending_entries(self, store):
        await store.ensure_group("s", "g")
        await store.append("s", {"a": "1"})
        await store.read_group("s", "g", "other", NEW_ENTRIES)

        assert await store.read_group("s", "g", "c", GROUP_HISTORY) == []

    @pytest.mark.asyncio
    async def test_ack_removes_from_pending(self, store):
        await store.ensure_group("s", "g")
        entry_id = await store.append("s", {"a": "1"})
        await store.read_group("s", "g", "c", NEW_ENTRIES)
        assert await store.pending("s", "g") == 1

        assert await store.ack("s", "g", entry_id) == 1
        assert await store.ack("s", "g", entry_id) == 0
        assert await store.pending("s", "g") == 0
        assert await store.delivery_count("s", "g", entry_id) == 0

    @pytest.mark.asyncio
    async def test_approximate_trim_waits_for_slack(self, store):
        for i in range(10 + TRIM_SLACK):
            await store.append("s", {"i": str(i)}, maxlen=10)
        assert await store.length("s") == 10 + TRIM_SLACK

        await store.append("s", {"i": "last"}, maxlen=10)
        assert await store.length("s") == 10

    @pytest.mark.asyncio
    async def test_exact_trim(self, store):
        for i in range(5):
            await store.append("s", {"i": str(i)})
        assert await store.trim("s", 2, approximate=False) == 3
        entries = await store.range("s")
        assert [e.fields["i"] for e in entries] == ["3", "4"]

    @pytest.mark.asyncio
    async def test_trimmed_pending_entry_comes_back_without_fields(self, store):
        await store.ensure_group("s", "g")
        entry_id = await store.append("s", {"a": "1"})
        await store.read_group("s", "g", "c", NEW_ENTRIES)
        await store.append("s", {"a": "2"})
        await store.trim("s", 1, approximate=False)

        entries = await store.read_group("s", "g", "c", GROUP_HISTORY)
        assert entries[0].id == entry_id
        assert entries[0].fields == {}

    @pytest.mark.asyncio
    async def test_blocking_read_wakes_on_append(self, store):
        await store.ensure_group("s", "g")

        async def append_later():
            await asyncio.sleep(0.01)
            return await store.append("s", {"a": "1"})

        reader = asyncio.create_task(store.read_group("s", "g", "c", NEW_ENTRIES, block_ms=1000))
        entry_id = await append_later()
        entries = await reader
        assert [e.id for e in entries] == [entry_id]

    @pytest.mark.asyncio
    async def test_blocking_read_times_out_empty(self, store):
        await store.ensure_group("s", "g")
        assert await store.read_group("s", "g", "c", NEW_ENTRIES, block_ms=10) == []

    @pytest.mark.asyncio
    async def test_range_bounds_and_count(self, store):
        ids = [await store.append("s", {"i": str(i)}) for i in range(4)]
        entries = await store.range("s", start=ids[1], end=ids[2])
        assert [e.id for e in entries] == ids[1:3]
        assert len(await store.range("s", count=2)) == 2
        assert await store.range("missing") == []
