from typing import Any, Optional

from shopflow.models.outbox import OutboxMessage
from shopflow.models.processed_event import ProcessedEvent
from shopflow.schemas.events import StreamEvent


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: int,
    status: str,
    stream: str,
    event: StreamEvent,
    related_id: Optional[int] = None,
    conn: Any = None
) -> OutboxMessage:
    """
    Creates a new Outbox row using the provided database connection (transaction).

    CRITICAL: Passing 'conn' ensures the event is created atomically with the business data.
    """
    return await OutboxMessage.create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        related_id=related_id,
        status=status,
        stream=stream,
        payload=event.to_fields(),
        published=False,
        attempts=0,
        using_db=conn
    )


def event_key(group: str, stream: str, entry_id: str) -> str:
    return f"{group}:{stream}:{entry_id}"


async def already_processed(key: Optional[str], conn: Any) -> bool:
    if key is None:
        return False
    return await ProcessedEvent.filter(event_key=key).using_db(conn).exists()


async def mark_processed(key: Optional[str], conn: Any) -> None:
    if key is not None:
        await ProcessedEvent.create(event_key=key, using_db=conn)
