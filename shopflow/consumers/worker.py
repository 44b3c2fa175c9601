"""
Generic consumer-group worker.

Every participant runs one worker per stream it consumes. A worker is bound
to a single (stream, group, consumer) triple and moves through two phases:

    BACKLOG  re-read this consumer's pending entries (cursor "0") so work
             claimed before a restart finishes first; an empty read
             switches to LIVE.
    LIVE     block for entries the group has never seen (cursor ">").
             The worker never returns to BACKLOG.

Each delivered entry is checked against the retry budget, decoded into its
typed event, handed to the handler and acknowledged only on success.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Type

from shopflow.broker.base import GROUP_HISTORY, NEW_ENTRIES, Entry, LogStore
from shopflow.consumers.dead_letter import DeadLetterRouter
from shopflow.core.config import BLOCK_MS, ERROR_BACKOFF, READ_BATCH_SIZE, RETRY_BUDGET
from shopflow.core.errors import BrokerError, MalformedEntryError
from shopflow.schemas.events import StreamEvent

log = logging.getLogger(__name__)

Handler = Callable[[Any, str], Awaitable[None]]


class Phase(str, Enum):
    BACKLOG = "BACKLOG"
    LIVE = "LIVE"


@dataclass
class WorkerStats:
    acked: int = 0
    failed: int = 0
    dropped: int = 0
    dead_lettered: int = 0


async def wait_or_stop(stop_event: asyncio.Event, timeout: float) -> None:
    """Sleeps for `timeout` seconds or until the stop event is set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout)
    except asyncio.TimeoutError:
        pass


class ConsumerGroupWorker:

    def __init__(
        self,
        store: LogStore,
        stream: str,
        group: str,
        consumer: str,
        event_type: Type[StreamEvent],
        handler: Handler,
        dead_letters: Optional[DeadLetterRouter] = None,
        retry_budget: int = RETRY_BUDGET,
        block_ms: Optional[int] = BLOCK_MS,
        batch_size: int = READ_BATCH_SIZE,
        error_backoff: float = ERROR_BACKOFF,
    ):
        self.store = store
        self.stream = stream
        self.group = group
        self.consumer = consumer
        self.event_type = event_type
        self.handler = handler
        self.dead_letters = dead_letters or DeadLetterRouter(store)
        self.retry_budget = retry_budget
        self.block_ms = block_ms
        self.batch_size = batch_size
        self.error_backoff = error_backoff
        self.phase = Phase.BACKLOG
        self.stats = WorkerStats()

    @property
    def name(self) -> str:
        return f"{self.group}/{self.stream}"

    @property
    def max_retries_reason(self) -> str:
        return f"Exceeded max retries ({self.retry_budget})"

    async def ensure_group(self) -> bool:
        return await self.store.ensure_group(self.stream, self.group)

    async def poll_once(self) -> int:
        """
        Runs one read cycle and processes what it returned. Returns the number
        of entries delivered. Read failures propagate as BrokerError.
        """
        if self.phase is Phase.BACKLOG:
            entries = await self.store.read_group(
                self.stream, self.group, self.consumer, GROUP_HISTORY, count=self.batch_size
            )
            if not entries:
                log.info(f"{self.name}: backlog drained, switching to new entries")
                self.phase = Phase.LIVE
                return 0
        else:
            entries = await self.store.read_group(
                self.stream, self.group, self.consumer, NEW_ENTRIES,
                count=self.batch_size, block_ms=self.block_ms,
            )

        for entry in entries:
            await self._process(entry)
        return len(entries)

    async def _process(self, entry: Entry) -> None:
        try:
            deliveries = await self.store.delivery_count(self.stream, self.group, entry.id)
        except BrokerError as e:
            log.error(f"{self.name}: could not read delivery count of {entry.id}, will retry: {e}")
            return

        if deliveries >= self.retry_budget:
            log.critical(
                f"{self.name}: message {entry.id} delivered {deliveries} times. "
                f"Moving to Dead Letter Queue."
            )
            await self.dead_letters.move_to_dlq(self.stream, entry, self.max_retries_reason)
            if await self._ack(entry):
                self.stats.dead_lettered += 1
            return

        try:
            event = self.event_type.from_fields(entry.fields)
            await self.handler(event, entry.id)
        except MalformedEntryError as e:
            log.error(f"{self.name}: dropping malformed message {entry.id}: {e}")
            if await self._ack(entry):
                self.stats.dropped += 1
            return
        except Exception as e:
            # left in the PEL; redelivered with a higher count on the next backlog sweep
            self.stats.failed += 1
            log.error(f"{self.name}: error processing message {entry.id} (delivery {deliveries}): {e}")
            return

        if await self._ack(entry):
            self.stats.acked += 1
            log.info(f"{self.name}: successfully processed message {entry.id}")

    async def _ack(self, entry: Entry) -> bool:
        try:
            await self.store.ack(self.stream, self.group, entry.id)
        except BrokerError as e:
            log.error(f"{self.name}: failed to acknowledge {entry.id}: {e}")
            return False
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Main loop; exits between read calls once `stop_event` is set."""
        log.info(f"Starting worker {self.name} as {self.consumer}")
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except BrokerError as e:
                log.error(f"{self.name}: error reading stream: {e}")
                await wait_or_stop(stop_event, self.error_backoff)
            except Exception:
                log.exception(f"{self.name}: unexpected error in worker loop")
                await wait_or_stop(stop_event, self.error_backoff)
            # yield to the loop even when the store answered without awaiting
            await asyncio.sleep(0)
        log.info(f"Gracefully stopping worker {self.name}")
