"""
Maison Cléo Production - FastAPI Application Entry Point.

Mirrors WooCommerce orders into the workshop database and serves the
production dashboard: queues, assignments, statuses and shipping deadlines.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from atelier.adapters.woocommerce import get_order_source
from atelier.config import get_settings
from atelier.database import engine, async_session_maker, get_db, Base
from atelier.errors import AtelierError
from atelier.routers import (
    archives, assignments, delais, fournitures, images, orders, production, sync, tricoteuses,
)
from atelier.services.sync_engine import SyncEngine
from atelier.tasks.maintenance import periodic_maintenance

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup: Create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")

    app.state.sync_engine = SyncEngine(async_session_maker, get_order_source)

    maintenance = None
    if settings.MAINTENANCE_INTERVAL_SECONDS > 0:
        maintenance = asyncio.create_task(
            periodic_maintenance(async_session_maker, settings.MAINTENANCE_INTERVAL_SECONDS)
        )

    yield

    # Shutdown: Cleanup
    if maintenance is not None:
        maintenance.cancel()
        with suppress(asyncio.CancelledError):
            await maintenance
    app.state.sync_engine.cancel()
    await engine.dispose()
    logger.info("Database connection closed")


app = FastAPI(
    title=settings.APP_NAME,
    description="Order production tracking for the Maison Cléo workshop",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS Middleware (for the Vite dashboard)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        settings.FRONTEND_URL,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AtelierError)
async def atelier_error_handler(request: Request, exc: AtelierError):
    """Map service-layer errors onto HTTP status codes."""
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.message})


# Include Routers
app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(production.router, prefix="/api/production", tags=["Production"])
app.include_router(assignments.router, prefix="/api/assignments", tags=["Assignments"])
app.include_router(tricoteuses.router, prefix="/api/tricoteuses", tags=["Tricoteuses"])
app.include_router(fournitures.router, prefix="/api/fournitures", tags=["Fournitures"])
app.include_router(delais.router, prefix="/api/delais", tags=["Delais"])
app.include_router(images.router, prefix="/api/images", tags=["Images"])
app.include_router(archives.router, prefix="/api/archives", tags=["Archives"])


@app.get("/health")
async def health_check(db=Depends(get_db)):
    """Deep Health Check: Verifies Database Connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        # Return 503 so load balancers know to stop sending traffic
        raise HTTPException(status_code=503, detail="Database disconnected")


@app.get("/")
async def root():
    """Root endpoint with system info."""
    return {
        "name": settings.APP_NAME,
        "status": "operational",
        "woocommerce_configured": settings.woocommerce_configured,
    }
