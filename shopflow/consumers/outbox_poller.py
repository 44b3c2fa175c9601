import asyncio
import logging

from tortoise import timezone

from shopflow.consumers.worker import wait_or_stop
from shopflow.core.config import OUTBOX_BATCH_SIZE, OUTBOX_IDLE_INTERVAL
from shopflow.events.publisher import Publisher
from shopflow.models.outbox import OutboxMessage

log = logging.getLogger(__name__)


class OutboxPublisher:
    """
    Relays committed outbox rows to the Log Store.

    A row is marked published only after its append succeeded. A crash between
    the append and the mark republishes the row on the next cycle, so delivery
    is at-least-once and consumers treat duplicates as no-ops.
    """

    def __init__(
        self,
        publisher: Publisher,
        batch_size: int = OUTBOX_BATCH_SIZE,
        idle_interval: float = OUTBOX_IDLE_INTERVAL,
    ):
        self.publisher = publisher
        self.batch_size = batch_size
        self.idle_interval = idle_interval

    async def poll_once(self) -> int:
        """
        Queries the Outbox table for unpublished rows and attempts to publish them.
        Returns how many rows were published in this cycle.
        """
        # Rows are never skipped for having failed before; every cycle retries them
        messages = await OutboxMessage.filter(published=False).order_by("id").limit(self.batch_size)

        published = 0
        for message in messages:
            try:
                # 1. Append the event to its stream
                await self.publisher.publish_fields(message.stream, message.payload)
            except Exception as e:
                # 2. Leave it unpublished and count the attempt
                message.attempts += 1
                await message.save(update_fields=["attempts"])
                log.error(f"Failed to publish outbox message {message.id} to {message.stream}: {e}")
                continue

            # 3. Mark the row as published on success
            message.published = True
            message.published_at = timezone.now()
            await message.save(update_fields=["published", "published_at"])
            published += 1
            log.info(
                f"Published event for {message.aggregate_type} ID {message.aggregate_id}, "
                f"status: {message.status}"
            )
        return published

    async def run(self, stop_event: asyncio.Event) -> None:
        """Main loop for the outbox relay."""
        log.info("--- Outbox Publisher Started ---")
        while not stop_event.is_set():
            try:
                published = await self.poll_once()
            except Exception as e:
                log.error(f"Outbox publisher encountered a database error: {e}.")
                published = 0
            if not published:
                await wait_or_stop(stop_event, self.idle_interval)
        log.info("Outbox publisher stopped.")
