import logging
from typing import List

import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError

from shopflow.broker.base import Entry, LogStore
from shopflow.core.errors import BrokerError

log = logging.getLogger(__name__)


def _entries(messages) -> List[Entry]:
    # pending entries whose payload was trimmed come back with no fields
    return [Entry(id=entry_id, fields=dict(fields or {})) for entry_id, fields in messages or []]


class RedisLogStore(LogStore):
    """LogStore backed by Redis Streams (XADD / XREADGROUP / XPENDING / XACK)."""

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisLogStore":
        return cls(redis.from_url(url, decode_responses=True))

    async def append(self, stream, fields, maxlen=None, approximate=True):
        try:
            return await self._redis.xadd(stream, fields, maxlen=maxlen, approximate=approximate)
        except RedisError as e:
            raise BrokerError(f"XADD {stream} failed: {e}") from e

    async def trim(self, stream, maxlen, approximate=True):
        try:
            return await self._redis.xtrim(stream, maxlen=maxlen, approximate=approximate)
        except RedisError as e:
            raise BrokerError(f"XTRIM {stream} failed: {e}") from e

    async def ensure_group(self, stream, group, start_id="$"):
        try:
            await self._redis.xgroup_create(stream, group, id=start_id, mkstream=True)
        except ResponseError as e:
            # Redis answers BUSYGROUP when the group already exists
            if "BUSYGROUP" not in str(e):
                raise BrokerError(f"XGROUP CREATE {stream} {group} failed: {e}") from e
            return False
        except RedisError as e:
            raise BrokerError(f"XGROUP CREATE {stream} {group} failed: {e}") from e
        log.info(f"Consumer group {group} for stream {stream} is ready")
        return True

    async def read_group(self, stream, group, consumer, cursor, count=1, block_ms=None):
        try:
            response = await self._redis.xreadgroup(
                groupname=group,
                consumername=consumer,
                streams={stream: cursor},
                count=count,
                block=block_ms,
            )
        except RedisError as e:
            raise BrokerError(f"XREADGROUP {stream} {group} failed: {e}") from e

        if not response:
            return []
        # RESP3 returns {stream: [messages]}, RESP2 a list of [stream, messages] pairs
        if isinstance(response, dict):
            batches = [messages for value in response.values() for messages in value]
        else:
            batches = [messages for _, messages in response]
        entries = []
        for messages in batches:
            entries.extend(_entries(messages))
        return entries

    async def delivery_count(self, stream, group, entry_id):
        try:
            info = await self._redis.xpending_range(stream, group, min=entry_id, max=entry_id, count=1)
        except RedisError as e:
            raise BrokerError(f"XPENDING {stream} {group} failed: {e}") from e
        if not info:
            return 0
        return int(info[0]["times_delivered"])

    async def ack(self, stream, group, *entry_ids):
        if not entry_ids:
            return 0
        try:
            return await self._redis.xack(stream, group, *entry_ids)
        except RedisError as e:
            raise BrokerError(f"XACK {stream} {group} failed: {e}") from e

    async def pending(self, stream, group):
        try:
            summary = await self._redis.xpending(stream, group)
        except RedisError as e:
            raise BrokerError(f"XPENDING {stream} {group} failed: {e}") from e
        return int(summary["pending"])

    async def length(self, stream):
        try:
            return await self._redis.xlen(stream)
        except RedisError as e:
            raise BrokerError(f"XLEN {stream} failed: {e}") from e

    async def range(self, stream, start="-", end="+", count=None):
        try:
            return _entries(await self._redis.xrange(stream, min=start, max=end, count=count))
        except RedisError as e:
            raise BrokerError(f"XRANGE {stream} failed: {e}") from e

    async def close(self):
        await self._redis.aclose()
