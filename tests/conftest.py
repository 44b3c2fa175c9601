import pytest
import pytest_asyncio

from shopflow.broker.memory import InMemoryLogStore
from shopflow.core.db import init_db, close_db


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database for every test."""
    await init_db("sqlite://:memory:", generate_schemas=True)
    yield
    await close_db()


@pytest.fixture
def store():
    return InMemoryLogStore()


async def _drain(workers, outbox=None, rounds=20):
    for _ in range(rounds):
        moved = 0
        if outbox is not None:
            moved += await outbox.poll_once()
        for worker in workers:
            moved += await worker.poll_once()
        if not moved and all(w.phase.value == "LIVE" for w in workers):
            return


@pytest.fixture
def drain():
    """
    Alternates outbox relays and worker polls until nothing moves, which
    lets a whole choreography settle without background tasks. Workers
    must be built with block_ms=None.
    """
    return _drain
