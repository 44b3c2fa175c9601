import logging
from typing import Optional

from tortoise import Tortoise

from shopflow.core.config import DB_URL

log = logging.getLogger(__name__)

# Define all models modules for the ORM
MODELS_MODULES = [
    "shopflow.models.order",
    "shopflow.models.product",
    "shopflow.models.payment",
    "shopflow.models.delivery",
    "shopflow.models.cart",
    "shopflow.models.outbox",
    "shopflow.models.processed_event",
]


async def init_db(db_url: Optional[str] = None, generate_schemas: bool = True):
    """Initializes the Tortoise ORM connection and generates schemas."""
    url = db_url or DB_URL
    try:
        await Tortoise.init(
            db_url=url,
            modules={"models": MODELS_MODULES},
        )
        if generate_schemas:
            # Generate the database schema (create tables)
            await Tortoise.generate_schemas(safe=True)
        log.info("Database connection established and schemas generated.")
    except Exception as e:
        log.critical(f"Could not connect to database at {url}. Error: {e}")
        # Re-raise to prevent the application from starting without a database
        raise


async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
