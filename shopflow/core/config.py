import os

# Database Configuration
# Each service owns its own store; a single-process run shares one database.
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/shopflow_db")

# Log Store (Redis Streams) Configuration
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")

# Application Metadata
PROJECT_NAME = "Shopflow Event Choreography"
VERSION = "1.0.0"

# Which participants this process runs ("all" or a comma separated list)
SERVICE_NAMES = os.getenv("SERVICE_NAMES", "all")
RUN_WORKERS = os.getenv("RUN_WORKERS", "true").lower() in ("1", "true", "yes")

# Consumer-Group Worker Configuration
RETRY_BUDGET = int(os.getenv("RETRY_BUDGET", 5)) # Deliveries before an entry is dead-lettered
BLOCK_MS = int(os.getenv("BLOCK_MS", 5000)) # Blocking read timeout in LIVE phase
READ_BATCH_SIZE = int(os.getenv("READ_BATCH_SIZE", 10)) # Entries per read call
ERROR_BACKOFF = float(os.getenv("ERROR_BACKOFF", 1.0)) # Pause after a failed read, in seconds

# Publisher Configuration
STREAM_MAXLEN = int(os.getenv("STREAM_MAXLEN", 1000)) # Approximate retention cap per stream

# Outbox Publisher Configuration
OUTBOX_BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", 100)) # Rows fetched per poll
OUTBOX_IDLE_INTERVAL = float(os.getenv("OUTBOX_IDLE_INTERVAL", 0.5)) # Sleep when the outbox is empty

# Payment Gateway Configuration
PAYMENT_SERVER_KEY = os.getenv("PAYMENT_SERVER_KEY", "dev-server-key")
PAYMENT_URL_BASE = os.getenv("PAYMENT_URL_BASE", "https://pay.example.com/snap/v2/vtweb")
PAYMENT_EXPIRY_MINUTES = int(os.getenv("PAYMENT_EXPIRY_MINUTES", 35)) # Pending payments older than this are failed
CLEANUP_INTERVAL = int(os.getenv("CLEANUP_INTERVAL", 300)) # Seconds between cleanup sweeps
