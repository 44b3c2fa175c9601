import logging
from datetime import datetime, timezone
from typing import List, Optional

from shopflow.broker.base import Entry, LogStore
from shopflow.events.streams import dlq_stream

log = logging.getLogger(__name__)


class DeadLetterRouter:
    """
    Moves poison entries to the '<stream>:dlq' sibling stream together with
    failure metadata. Runs on a path that is already handling a failure, so it
    never raises: a failed move is logged and reported as None.
    """

    def __init__(self, store: LogStore):
        self.store = store

    async def move_to_dlq(self, stream: str, entry: Entry, reason: str) -> Optional[str]:
        target = dlq_stream(stream)
        record = dict(entry.fields)
        record["error_reason"] = reason
        record["failed_at"] = datetime.now(timezone.utc).isoformat()
        record["original_id"] = entry.id
        try:
            dlq_id = await self.store.append(target, record)
        except Exception as e:
            log.critical(f"Failed to move message {entry.id} to DLQ {target}: {e}")
            return None
        log.warning(f"Moved message {entry.id} to DLQ {target} as {dlq_id}: {reason}")
        return dlq_id


async def list_dead_letters(store: LogStore, stream: str, count: Optional[int] = 100) -> List[Entry]:
    """Reads the dead-letter sibling of `stream` for manual inspection."""
    return await store.range(dlq_stream(stream), count=count)
