import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tiger_tracker.api.routes import router as api_router
from tiger_tracker.core.config import get_settings
from tiger_tracker.core.database import db_manager, get_db
from tiger_tracker.core.logging_config import get_logger, setup_logging
from tiger_tracker.db.init_db import init_db
from tiger_tracker.db.models import IngestionCheckpoint

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    try:
        await init_db()
    except (SQLAlchemyError, OSError) as e:
        logger.error("db_init_failed", error=str(e))
    logger.info("startup_event", msg="API ready")
    yield
    await db_manager.dispose()


app = FastAPI(title="tiger-tracker", lifespan=lifespan)

# Instrument Prometheus
Instrumentator().instrument(app).expose(app)


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    start_time = time.time()
    db_status = "unhealthy"
    ingest_status = "unknown"
    last_run = None

    try:
        # Check DB connectivity
        await db.execute(select(1))
        db_status = "connected"

        result = await db.execute(select(IngestionCheckpoint))
        checkpoints = result.scalars().all()

        if not checkpoints:
            ingest_status = "no_runs_yet"
        else:
            failures = [cp for cp in checkpoints if cp.last_status != 'success']
            ingest_status = "failure" if failures else "success"

            timestamps = [cp.last_ingested_timestamp for cp in checkpoints if cp.last_ingested_timestamp]
            if timestamps:
                last_run = max(timestamps).isoformat()

    except (SQLAlchemyError, OSError) as e:
        db_status = f"error: {str(e)}"

    latency = (time.time() - start_time) * 1000

    return {
        "status": "ok",
        "db_connectivity": db_status,
        "ingest_status": ingest_status,
        "last_run": last_run,
        "latency_ms": round(latency, 2)
    }

app.include_router(api_router)
