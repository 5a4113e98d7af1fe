"""
ClickHouse Manager - FastAPI Application.
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chmanager import __version__
from chmanager.api.routes import compare, connections, reports
from chmanager.core.config import settings
from chmanager.core.dependencies import close_remote_client

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""

    # Startup
    logger.info("Starting ClickHouse Manager...")

    from chmanager.db.session import init_db, check_db_connection

    init_db()
    if check_db_connection():
        logger.info("Local store connection successful")
    else:
        logger.warning("Local store connection failed")

    logger.info("Application started successfully")

    yield

    # Shutdown
    logger.info("Shutting down ClickHouse Manager...")
    from chmanager.db.session import close_db
    close_remote_client()
    close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="ClickHouse Manager",
    description="Administrative console for ClickHouse: slow query reports and query comparison",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For development. Restrict in production.
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(connections.router)
app.include_router(reports.router)
app.include_router(compare.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": "ClickHouse Manager",
        "version": __version__,
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    from chmanager.db.session import check_db_connection

    db_healthy = check_db_connection()
    return {
        "status": "healthy" if db_healthy else "degraded",
        "database": {
            "status": "healthy" if db_healthy else "unhealthy"
        },
    }


def run() -> None:
    """Console entry point."""
    import uvicorn
    uvicorn.run(
        "chmanager.main:app",
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    run()
