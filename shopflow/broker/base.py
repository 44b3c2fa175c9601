from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

# Cursor values understood by read_group
NEW_ENTRIES = ">"      # only entries never delivered to the group
GROUP_HISTORY = "0"    # this consumer's pending (delivered, unacknowledged) entries


@dataclass(frozen=True)
class Entry:
    """One immutable record of a stream."""
    id: str
    fields: Dict[str, str] = field(default_factory=dict)


def parse_entry_id(entry_id: str):
    """Splits '<ms>-<seq>' into a comparable tuple."""
    ms, _, seq = entry_id.partition("-")
    return int(ms), int(seq or 0)


class LogStore(ABC):
    """
    Append-only, partitioned log keyed by stream name, with consumer-group
    bookkeeping: a delivery cursor and a pending entries list (PEL)
    carrying a delivery count per entry.

    Implementations raise shopflow.core.errors.BrokerError for any
    infrastructure failure.
    """

    @abstractmethod
    async def append(
        self,
        stream: str,
        fields: Dict[str, str],
        maxlen: Optional[int] = None,
        approximate: bool = True,
    ) -> str:
        """Appends an entry and returns its generated, monotonic ID."""

    @abstractmethod
    async def trim(self, stream: str, maxlen: int, approximate: bool = True) -> int:
        """Drops the oldest entries beyond maxlen; returns how many were removed."""

    @abstractmethod
    async def ensure_group(self, stream: str, group: str, start_id: str = "$") -> bool:
        """Creates the group (and the stream). Returns False if it already existed."""

    @abstractmethod
    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        cursor: str,
        count: int = 1,
        block_ms: Optional[int] = None,
    ) -> List[Entry]:
        """
        Delivers entries to `consumer`. With cursor '>' returns entries the
        group has never delivered, blocking up to block_ms for one to arrive.
        Any other cursor re-delivers the consumer's pending entries with an ID
        greater than the cursor. Each delivery increments the delivery count.
        """

    @abstractmethod
    async def delivery_count(self, stream: str, group: str, entry_id: str) -> int:
        """Current delivery count of a pending entry, 0 when it is not pending."""

    @abstractmethod
    async def ack(self, stream: str, group: str, *entry_ids: str) -> int:
        """Removes entries from the group's PEL; returns how many were removed."""

    @abstractmethod
    async def pending(self, stream: str, group: str) -> int:
        """Size of the group's PEL."""

    @abstractmethod
    async def length(self, stream: str) -> int:
        """Number of entries currently retained in the stream."""

    @abstractmethod
    async def range(
        self,
        stream: str,
        start: str = "-",
        end: str = "+",
        count: Optional[int] = None,
    ) -> List[Entry]:
        """Entries between start and end (inclusive), oldest first."""

    async def close(self) -> None:
        return None
