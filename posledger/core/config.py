import os

# Database Configuration
# SQLite file by default, any Tortoise-supported URL works (e.g. postgres://...)
DB_URL = os.getenv("DATABASE_URL", "sqlite://data/posledger.sqlite3")

# Application Metadata
PROJECT_NAME = "POS Ledger"
VERSION = "1.0.0"

# Every request to the remote store is scoped by this header
ACCOUNT_HEADER = "X-User-Id"

# Session engine: remote durable store
REMOTE_API_URL = os.getenv("REMOTE_API_URL", "http://localhost:8000")
REMOTE_TIMEOUT = float(os.getenv("REMOTE_TIMEOUT", 10))

# Session engine: local cache (one JSON file per namespaced key)
LOCAL_CACHE_DIR = os.getenv("LOCAL_CACHE_DIR", "data/cache")
LOCAL_CACHE_NAMESPACE = os.getenv("LOCAL_CACHE_NAMESPACE", "posledger")

# Sale deductions may oversell (drive stock below zero) unless this is false
ALLOW_NEGATIVE_STOCK = os.getenv("ALLOW_NEGATIVE_STOCK", "true").lower() in ("1", "true", "yes")

# Outbox replay configuration (failed remote writes)
POLLING_INTERVAL = int(os.getenv("POLLING_INTERVAL", 5)) # Replayer retries the outbox every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Failed replays before an entry is dropped
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many outbox entries to replay per pass
