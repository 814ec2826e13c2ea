import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from posledger.core.db import init_db, close_db
from posledger.api.v1.collections import routers as collection_routers
from posledger.api.v1.sync import router as sync_router
from posledger.core.config import PROJECT_NAME, VERSION
from posledger.core.exception_handlers import setup_exception_handlers

log = logging.getLogger("uvicorn")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    yield
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# One router per collection: /api/ingredients, /api/products, ...
for collection_router in collection_routers:
    app.include_router(collection_router, prefix="/api", tags=["Collections"])
app.include_router(sync_router, prefix="/api", tags=["Sync"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
