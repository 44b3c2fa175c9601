import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from shopflow.core.db import init_db, close_db
from shopflow.api.v1.orders import router as orders_router
from shopflow.api.v1.payments import router as payments_router
from shopflow.api.v1.deliveries import router as deliveries_router
from shopflow.api.v1.dead_letters import router as dead_letters_router
from shopflow.broker.redis_store import RedisLogStore
from shopflow.consumers.runner import build_runtime, parse_services
from shopflow.core.config import PROJECT_NAME, VERSION, REDIS_URL, RUN_WORKERS, SERVICE_NAMES
from shopflow.core.exception_handlers import setup_exception_handlers
from shopflow.core.logging_config import setup_logging

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    setup_logging()
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    app.state.store = RedisLogStore.from_url(REDIS_URL)

    runtime = None
    if RUN_WORKERS:
        runtime = build_runtime(parse_services(SERVICE_NAMES.split(",")), app.state.store)
        await runtime.start()
    yield
    if runtime is not None:
        await runtime.stop()
    await app.state.store.close()
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    # Configure API documentation and paths
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers for modular API structure
app.include_router(orders_router, prefix="/api/v1/orders", tags=["Order Management"])
app.include_router(payments_router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(deliveries_router, prefix="/api/v1/deliveries", tags=["Deliveries"])
app.include_router(dead_letters_router, prefix="/api/v1/dead-letters", tags=["Operations"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
