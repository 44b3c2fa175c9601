"""
Process wiring: builds the workers each participant runs, starts them as
asyncio tasks next to the outbox publisher and periodic jobs, and stops them
cooperatively.

    shopflow-worker                 # every participant in one process
    shopflow-worker order payment   # only the named participants
"""
import asyncio
import logging
import signal
import sys
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from shopflow.broker.base import LogStore
from shopflow.broker.redis_store import RedisLogStore
from shopflow.consumers import cart_consumer, delivery_consumer, order_status_consumer, product_consumer
from shopflow.consumers.dead_letter import DeadLetterRouter
from shopflow.consumers.outbox_poller import OutboxPublisher
from shopflow.consumers.worker import ConsumerGroupWorker, wait_or_stop
from shopflow.core.config import CLEANUP_INTERVAL, REDIS_URL, SERVICE_NAMES
from shopflow.core.db import close_db, init_db
from shopflow.core.logging_config import setup_logging
from shopflow.events.publisher import Publisher
from shopflow.events.streams import consumer_name, group_name
from shopflow.schemas.events import EVENT_TYPES
from shopflow.services import payment_service
from shopflow.services.payment_client import LocalPaymentClient, PaymentClient

log = logging.getLogger(__name__)

SERVICES = ("order", "product", "payment", "delivery", "cart")
# Participants that announce state changes through their outbox table
OUTBOX_SERVICES = {"order", "product", "payment", "delivery"}


def parse_services(value: Iterable[str]) -> List[str]:
    names = [n.strip() for n in value if n.strip()]
    if not names or "all" in names:
        return list(SERVICES)
    unknown = set(names) - set(SERVICES)
    if unknown:
        raise ValueError(f"Unknown service(s): {', '.join(sorted(unknown))}")
    return names


def subscriptions_for(service: str, payment_client: Optional[PaymentClient] = None) -> Dict[str, Callable]:
    if service == "order":
        return order_status_consumer.subscriptions(payment_client)
    if service == "product":
        return product_consumer.SUBSCRIPTIONS
    if service == "delivery":
        return delivery_consumer.SUBSCRIPTIONS
    if service == "cart":
        return cart_consumer.SUBSCRIPTIONS
    return {}


def build_workers(
    service: str,
    store: LogStore,
    dead_letters: Optional[DeadLetterRouter] = None,
    payment_client: Optional[PaymentClient] = None,
    **worker_options,
) -> List[ConsumerGroupWorker]:
    """One worker per stream the service consumes, all in '<service>-group'."""
    dead_letters = dead_letters or DeadLetterRouter(store)
    return [
        ConsumerGroupWorker(
            store,
            stream=stream,
            group=group_name(service),
            consumer=consumer_name(service),
            event_type=EVENT_TYPES[stream],
            handler=handler,
            dead_letters=dead_letters,
            **worker_options,
        )
        for stream, handler in subscriptions_for(service, payment_client).items()
    ]


async def run_periodic(stop_event: asyncio.Event, interval: float, job: Callable[[], Awaitable], name: str):
    """Runs `job` immediately and then every `interval` seconds until stopped."""
    log.info(f"Starting {name} (runs every {interval} seconds)...")
    while not stop_event.is_set():
        try:
            await job()
        except Exception:
            log.exception(f"{name} failed")
        await wait_or_stop(stop_event, interval)
    log.info(f"Stopping {name}...")


class ServiceRuntime:
    """Owns the background tasks of one process."""

    def __init__(
        self,
        workers: List[ConsumerGroupWorker],
        outbox: Optional[OutboxPublisher] = None,
        jobs: Optional[List[Callable[[asyncio.Event], Awaitable]]] = None,
    ):
        self.workers = workers
        self.outbox = outbox
        self.jobs = jobs or []
        self.stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

    async def start(self):
        for worker in self.workers:
            await worker.ensure_group()
        for worker in self.workers:
            self._tasks.append(asyncio.create_task(worker.run(self.stop_event), name=worker.name))
        if self.outbox is not None:
            self._tasks.append(asyncio.create_task(self.outbox.run(self.stop_event), name="outbox"))
        for job in self.jobs:
            self._tasks.append(asyncio.create_task(job(self.stop_event)))
        log.info(f"Runtime started with {len(self._tasks)} task(s)")

    async def stop(self):
        """Signals every loop to exit and waits for in-flight work to finish."""
        self.stop_event.set()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, Exception):
                log.error(f"Task {task.get_name()} ended with {result!r}")
        self._tasks = []

    async def wait(self):
        await self.stop_event.wait()


def build_runtime(
    services: List[str],
    store: LogStore,
    payment_client: Optional[PaymentClient] = None,
    **worker_options,
) -> ServiceRuntime:
    dead_letters = DeadLetterRouter(store)
    payment_client = payment_client or LocalPaymentClient()
    workers = []
    for service in services:
        workers.extend(build_workers(service, store, dead_letters, payment_client, **worker_options))

    # one relay per database; a single-process run shares one
    outbox = OutboxPublisher(Publisher(store)) if OUTBOX_SERVICES.intersection(services) else None

    jobs = []
    if "payment" in services:
        jobs.append(lambda stop: run_periodic(
            stop, CLEANUP_INTERVAL, payment_service.cleanup_expired_payments, "payment cleanup worker"
        ))
    return ServiceRuntime(workers, outbox, jobs)


async def start_services(services: List[str]):
    """Main loop for a worker process."""
    await init_db()
    store = RedisLogStore.from_url(REDIS_URL)
    runtime = build_runtime(services, store)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runtime.stop_event.set)
        except NotImplementedError:
            pass

    log.info(f"--- Starting participants: {', '.join(services)} ---")
    try:
        await runtime.start()
        await runtime.wait()
    finally:
        await runtime.stop()
        await store.close()
        await close_db()


def main(argv: Optional[List[str]] = None):
    setup_logging()
    args = sys.argv[1:] if argv is None else argv
    services = parse_services(args or SERVICE_NAMES.split(","))
    try:
        asyncio.run(start_services(services))
    except KeyboardInterrupt:
        log.info("Worker service stopped.")


if __name__ == "__main__":
    main()
