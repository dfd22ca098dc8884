from tortoise import Tortoise
from deliverysync.core.config import DB_URL
import logging
from logging import INFO

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)
log = logging.getLogger("deliverysync.db")

# Define all models modules for the ORM
MODELS_MODULES = [
    "deliverysync.models.order",
    "deliverysync.models.delivery",
    "deliverysync.models.change_log",
]

async def init_db(db_url: str = DB_URL, generate_schemas: bool = True):
    """Initializes the Tortoise ORM connection and generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
        )
        if generate_schemas:
            await Tortoise.generate_schemas()
        log.info("Database connection established and schemas generated.")
    except Exception as e:
        log.critical(f"Could not connect to database at {db_url}. Error: {e}")
        # Re-raise to prevent the application from starting without a database
        raise

async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")


async def compare_and_set(model, pk, expected: dict, changes: dict, conn=None) -> bool:
    """
    Conditional write: applies `changes` to row `pk` only while the row still
    matches `expected` (Tortoise filter kwargs). Returns whether a row was written.

    This is the only admission control for contended rows; no lock is held
    between reading a row and writing it.
    """
    query = model.filter(id=pk, **expected)
    if conn is not None:
        query = query.using_db(conn)
    updated = await query.update(**changes)
    return updated > 0
