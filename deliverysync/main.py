import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from deliverysync.core.db import init_db, close_db
from deliverysync.api.v1.orders import router as orders_router
from deliverysync.api.v1.deliveries import router as deliveries_router
from deliverysync.api.v1.drivers import router as drivers_router
from deliverysync.consumers.change_relay import run_change_relay
from deliverysync.core.config import PROJECT_NAME, VERSION
from deliverysync.core.exception_handlers import setup_exception_handlers
from deliverysync.realtime.feed import ChangeFeed

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("deliverysync")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    relay = asyncio.create_task(run_change_relay(app.state.feed))
    yield
    relay.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await relay
    await app.state.feed.close()
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

# One feed per process; every realtime view attaches its channel here
app.state.feed = ChangeFeed()

# Include routers for modular API structure
app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(deliveries_router, prefix="/api/v1/deliveries", tags=["Deliveries"])
app.include_router(drivers_router, prefix="/api/v1/drivers", tags=["Drivers"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME, "open_channels": len(app.state.feed.channels)}
