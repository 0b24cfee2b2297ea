"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .api.deduplication import router as deduplication_router
from .config import settings
from .database import get_sessionmaker
from .health import get_health_status
from .services import DeduplicationResult, DeduplicationScheduler, DeduplicationService, SQLTransactionStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


async def run_range_job(user_id: str, start_date: datetime, end_date: datetime) -> DeduplicationResult:
    """Range detection for one user in its own session."""
    async with get_sessionmaker()() as session:
        service = DeduplicationService(SQLTransactionStore(session))
        return await service.detect_duplicates_in_range(user_id, start_date, end_date)


async def list_users() -> list[str]:
    async with get_sessionmaker()() as session:
        return await SQLTransactionStore(session).list_user_ids()


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.sweep_enabled:
        scheduler = DeduplicationScheduler(
            run_range_job,
            list_users,
            daily_run_hour=settings.sweep_run_hour,
            lookback_days=settings.sweep_lookback_days,
        )
        await scheduler.start()
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        await scheduler.stop()


app = FastAPI(title="Transaction Deduplication", version="1.0.0", lifespan=lifespan)
app.include_router(deduplication_router)


@app.get("/")
async def root():
    return {"message": "Transaction deduplication running"}


@app.get("/health")
async def health():
    """Liveness check - always returns OK if app is running."""
    return {"status": "ok"}


@app.get("/health/ready")
async def health_ready():
    """Readiness check - queries the database."""
    status = await get_health_status()
    code = 200 if status["status"] == "healthy" else 503
    return JSONResponse(content=status, status_code=code)


@app.get("/health/full")
async def health_full():
    """Full health check with details."""
    return await get_health_status()
