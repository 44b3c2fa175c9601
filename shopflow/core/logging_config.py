import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int = logging.INFO) -> None:
    """Configures the root logger once for API and worker processes."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Set logging level for Tortoise ORM and the Redis client
    logging.getLogger('tortoise').setLevel(logging.INFO)
    logging.getLogger('redis').setLevel(logging.WARNING)
