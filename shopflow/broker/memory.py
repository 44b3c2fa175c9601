import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shopflow.broker.base import NEW_ENTRIES, Entry, LogStore, parse_entry_id
from shopflow.core.errors import BrokerError

# Approximate trimming only kicks in once a stream exceeds its cap by this much
TRIM_SLACK = 100


@dataclass
class _Pending:
    consumer: str
    delivery_count: int
    delivered_at: float


@dataclass
class _Group:
    last_delivered_id: str
    pel: Dict[str, _Pending] = field(default_factory=dict)


@dataclass
class _Stream:
    entries: List[Entry] = field(default_factory=list)
    index: Dict[str, Entry] = field(default_factory=dict)
    last_id: str = "0-0"
    groups: Dict[str, _Group] = field(default_factory=dict)
    condition: Optional[asyncio.Condition] = None


class InMemoryLogStore(LogStore):
    """
    Process-local LogStore with the same delivery semantics as Redis Streams:
    monotonic '<ms>-<seq>' IDs, consumer groups with a last-delivered cursor,
    per-entry delivery counts, approximate trimming that leaves the PEL alone.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._streams: Dict[str, _Stream] = {}

    def _stream(self, name: str) -> _Stream:
        stream = self._streams.get(name)
        if stream is None:
            stream = self._streams[name] = _Stream()
        return stream

    def _group(self, stream: str, group: str) -> _Group:
        s = self._streams.get(stream)
        if s is None or group not in s.groups:
            raise BrokerError(f"NOGROUP No such key '{stream}' or consumer group '{group}'")
        return s.groups[group]

    def _next_id(self, s: _Stream) -> str:
        now_ms = int(self._clock() * 1000)
        last_ms, last_seq = parse_entry_id(s.last_id)
        if now_ms > last_ms:
            return f"{now_ms}-0"
        return f"{last_ms}-{last_seq + 1}"

    async def append(self, stream, fields, maxlen=None, approximate=True):
        if not fields:
            raise BrokerError("wrong number of arguments for 'xadd' command")
        s = self._stream(stream)
        entry = Entry(id=self._next_id(s), fields={str(k): str(v) for k, v in fields.items()})
        s.entries.append(entry)
        s.index[entry.id] = entry
        s.last_id = entry.id
        if maxlen is not None:
            await self.trim(stream, maxlen, approximate)
        if s.condition is not None:
            async with s.condition:
                s.condition.notify_all()
        return entry.id

    async def trim(self, stream, maxlen, approximate=True):
        s = self._streams.get(stream)
        if s is None:
            return 0
        excess = len(s.entries) - maxlen
        if excess <= 0 or (approximate and excess <= TRIM_SLACK):
            return 0
        for entry in s.entries[:excess]:
            del s.index[entry.id]
        del s.entries[:excess]
        return excess

    async def ensure_group(self, stream, group, start_id="$"):
        s = self._stream(stream)
        if group in s.groups:
            return False
        last = s.last_id if start_id == "$" else start_id
        s.groups[group] = _Group(last_delivered_id=last)
        return True

    def _undelivered(self, s: _Stream, g: _Group, count: int) -> List[Entry]:
        after = parse_entry_id(g.last_delivered_id)
        fresh = [e for e in s.entries if parse_entry_id(e.id) > after]
        return fresh[:count]

    async def read_group(self, stream, group, consumer, cursor, count=1, block_ms=None):
        g = self._group(stream, group)
        s = self._streams[stream]
        now = self._clock()

        if cursor != NEW_ENTRIES:
            after = parse_entry_id(cursor)
            ids = sorted(
                (eid for eid, p in g.pel.items()
                 if p.consumer == consumer and parse_entry_id(eid) > after),
                key=parse_entry_id,
            )[:count]
            delivered = []
            for eid in ids:
                pending = g.pel[eid]
                pending.delivery_count += 1
                pending.delivered_at = now
                # trimmed entries stay pending but lose their payload
                source = s.index.get(eid)
                delivered.append(Entry(id=eid, fields=dict(source.fields) if source else {}))
            return delivered

        entries = self._undelivered(s, g, count)
        if not entries and block_ms is not None:
            if s.condition is None:
                s.condition = asyncio.Condition()
            timeout = None if block_ms == 0 else block_ms / 1000
            try:
                async with s.condition:
                    await asyncio.wait_for(
                        s.condition.wait_for(lambda: bool(self._undelivered(s, g, count))),
                        timeout,
                    )
            except asyncio.TimeoutError:
                return []
            entries = self._undelivered(s, g, count)

        for entry in entries:
            g.pel[entry.id] = _Pending(consumer=consumer, delivery_count=1, delivered_at=self._clock())
            g.last_delivered_id = entry.id
        return [Entry(id=e.id, fields=dict(e.fields)) for e in entries]

    async def delivery_count(self, stream, group, entry_id):
        pending = self._group(stream, group).pel.get(entry_id)
        return pending.delivery_count if pending else 0

    async def ack(self, stream, group, *entry_ids):
        g = self._group(stream, group)
        removed = 0
        for eid in entry_ids:
            if g.pel.pop(eid, None) is not None:
                removed += 1
        return removed

    async def pending(self, stream, group):
        return len(self._group(stream, group).pel)

    async def length(self, stream):
        s = self._streams.get(stream)
        return len(s.entries) if s else 0

    async def range(self, stream, start="-", end="+", count=None):
        s = self._streams.get(stream)
        if s is None:
            return []
        low = (0, 0) if start == "-" else parse_entry_id(start)
        high = None if end == "+" else parse_entry_id(end)
        selected = [
            Entry(id=e.id, fields=dict(e.fields)) for e in s.entries
            if parse_entry_id(e.id) >= low and (high is None or parse_entry_id(e.id) <= high)
        ]
        return selected[:count] if count is not None else selected
