import pytest
from unittest.mock import AsyncMock, patch
from redis.exceptions import ConnectionError, ResponseError

from shopflow.broker.base import NEW_ENTRIES
from shopflow.broker.redis_store import RedisLogStore
from shopflow.core.errors import BrokerError


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def redis_store(client):
    return RedisLogStore(client)


class TestRedisLogStore:

    @pytest.mark.asyncio
    async def test_append_caps_stream_approximately(self, redis_store, client):
        client.xadd.return_value = "1700000000000-0"
        entry_id = await redis_store.append("s", {"order_id": "1"}, maxlen=1000)

        assert entry_id == "1700000000000-0"
        client.xadd.assert_awaited_once_with("s", {"order_id": "1"}, maxlen=1000, approximate=True)

    @pytest.mark.asyncio
    async def test_ensure_group_creates_stream(self, redis_store, client):
        assert await redis_store.ensure_group("s", "g") is True
        client.xgroup_create.assert_awaited_once_with("s", "g", id="$", mkstream=True)

    @pytest.mark.asyncio
    async def test_existing_group_is_not_an_error(self, redis_store, client):
        client.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")
        assert await redis_store.ensure_group("s", "g") is False

    @pytest.mark.asyncio
    async def test_other_group_errors_are_wrapped(self, redis_store, client):
        client.xgroup_create.side_effect = ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        with pytest.raises(BrokerError):
            await redis_store.ensure_group("s", "g")

    @pytest.mark.asyncio
    async def test_read_group_resp2_reply(self, redis_store, client):
        client.xreadgroup.return_value = [
            ["s", [("1-0", {"order_id": "1"}), ("1-1", {"order_id": "2"})]],
        ]
        entries = await redis_store.read_group("s", "g", "c", NEW_ENTRIES, count=10, block_ms=5000)

        assert [(e.id, e.fields["order_id"]) for e in entries] == [("1-0", "1"), ("1-1", "2")]
        client.xreadgroup.assert_awaited_once_with(
            groupname="g", consumername="c", streams={"s": ">"}, count=10, block=5000,
        )

    @pytest.mark.asyncio
    async def test_read_group_resp3_reply(self, redis_store, client):
        client.xreadgroup.return_value = {"s": [[("1-0", {"order_id": "1"})]]}
        entries = await redis_store.read_group("s", "g", "c", "0")

        assert [(e.id, e.fields) for e in entries] == [("1-0", {"order_id": "1"})]

    @pytest.mark.asyncio
    async def test_trimmed_pending_entry_has_no_fields(self, redis_store, client):
        client.xreadgroup.return_value = [["s", [("1-0", None)]]]
        entries = await redis_store.read_group("s", "g", "c", "0")
        assert entries[0].id == "1-0"
        assert entries[0].fields == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [None, [], {}])
    async def test_read_group_timeout_is_empty(self, redis_store, client, reply):
        client.xreadgroup.return_value = reply
        assert await redis_store.read_group("s", "g", "c", NEW_ENTRIES, block_ms=10) == []

    @pytest.mark.asyncio
    async def test_delivery_count_from_pending_details(self, redis_store, client):
        client.xpending_range.return_value = [
            {"message_id": "1-0", "consumer": "c", "time_since_delivered": 10, "times_delivered": 3},
        ]
        assert await redis_store.delivery_count("s", "g", "1-0") == 3
        client.xpending_range.assert_awaited_once_with("s", "g", min="1-0", max="1-0", count=1)

    @pytest.mark.asyncio
    async def test_delivery_count_of_acked_entry_is_zero(self, redis_store, client):
        client.xpending_range.return_value = []
        assert await redis_store.delivery_count("s", "g", "1-0") == 0

    @pytest.mark.asyncio
    async def test_pending_and_ack(self, redis_store, client):
        client.xpending.return_value = {"pending": 2, "min": "1-0", "max": "1-1", "consumers": []}
        client.xack.return_value = 1

        assert await redis_store.pending("s", "g") == 2
        assert await redis_store.ack("s", "g", "1-0") == 1
        assert await redis_store.ack("s", "g") == 0
        client.xack.assert_awaited_once_with("s", "g", "1-0")

    @pytest.mark.asyncio
    async def test_range_and_length(self, redis_store, client):
        client.xrange.return_value = [("1-0", {"a": "1"})]
        client.xlen.return_value = 1

        entries = await redis_store.range("s:dlq", count=100)
        assert entries[0].fields == {"a": "1"}
        assert await redis_store.length("s") == 1
        client.xrange.assert_awaited_once_with("s:dlq", min="-", max="+", count=100)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,args", [
        ("xadd", ("append", "s", {"a": "1"})),
        ("xtrim", ("trim", "s", 10)),
        ("xgroup_create", ("ensure_group", "s", "g")),
        ("xreadgroup", ("read_group", "s", "g", "c", NEW_ENTRIES)),
        ("xpending_range", ("delivery_count", "s", "g", "1-0")),
        ("xack", ("ack", "s", "g", "1-0")),
        ("xpending", ("pending", "s", "g")),
        ("xlen", ("length", "s")),
        ("xrange", ("range", "s")),
    ])
    async def test_connection_errors_become_broker_errors(self, redis_store, client, method, args):
        getattr(client, method).side_effect = ConnectionError("Connection refused")
        operation, *params = args
        with pytest.raises(BrokerError):
            await getattr(redis_store, operation)(*params)

    @pytest.mark.asyncio
    async def test_close_releases_client(self, redis_store, client):
        await redis_store.close()
        client.aclose.assert_awaited_once()

    def test_from_url_decodes_responses(self):
        with patch('shopflow.broker.redis_store.redis.from_url') as mock_from_url:
            store = RedisLogStore.from_url("redis://localhost:6379/0")
            mock_from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)
            assert store._redis is mock_from_url.return_value
