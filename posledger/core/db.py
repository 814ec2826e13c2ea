import os

from tortoise import Tortoise
from posledger.core.config import DB_URL
import logging
from logging import INFO

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)
log = logging.getLogger("posledger.db")

# Define all models modules for the ORM
MODELS_MODULES = [
    "posledger.models.catalog",
    "posledger.models.ledger",
    "posledger.models.people",
    "posledger.models.order",
    "posledger.models.applied_batch",
]

async def init_db(db_url: str = DB_URL):
    """Initializes the Tortoise ORM connection and generates schemas."""
    if db_url.startswith("sqlite://") and ":memory:" not in db_url:
        # SQLite creates the file but not its directory
        os.makedirs(os.path.dirname(db_url[len("sqlite://"):]) or ".", exist_ok=True)
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
            use_tz=True,
        )
        # Generate the database schema (create tables)
        await Tortoise.generate_schemas()
        log.info("Database connection established and schemas generated.")
    except Exception as e:
        log.error(f"FATAL ERROR: Could not connect to database at {db_url}. Error: {e}")
        # Re-raise to prevent the application from starting without a database
        raise

async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
