import logging
from typing import Dict, Optional

from shopflow.broker.base import LogStore
from shopflow.core.config import STREAM_MAXLEN
from shopflow.schemas.events import StreamEvent

log = logging.getLogger(__name__)


class Publisher:
    """
    Serializes domain events to flat field maps and appends them to a named
    stream, capping retained history with an approximate trim on write.
    """

    def __init__(self, store: LogStore, maxlen: Optional[int] = STREAM_MAXLEN):
        self.store = store
        self.maxlen = maxlen

    async def publish(self, stream: str, event: StreamEvent) -> str:
        return await self.publish_fields(stream, event.to_fields())

    async def publish_fields(self, stream: str, fields: Dict[str, str]) -> str:
        entry_id = await self.store.append(stream, fields, maxlen=self.maxlen, approximate=True)
        log.debug(f"Published {entry_id} to {stream}")
        return entry_id
