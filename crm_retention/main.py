"""
CRM Retention API.

Mounts the health score and retention routers under one FastAPI app and owns
the asyncpg pool for the life of the process. Scheduled work (the daily
health digest) runs outside the app through crm_retention.jobs.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crm_retention import __version__
from crm_retention.api import api_router
from crm_retention.core.database import init_db, close_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Retention dashboard dev servers
DASHBOARD_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database pool on startup and close it on shutdown."""
    try:
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        # /health stays up; data endpoints open the pool lazily on first use
        logger.error(f"Failed to initialize database: {e}")

    yield

    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


app = FastAPI(
    title="CRM Retention API",
    version=__version__,
    description="Client health scores, churn risk, cohort retention and the lead funnel.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=DASHBOARD_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Liveness check; does not touch the database."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("crm_retention.main:app", host="0.0.0.0", port=8000)
