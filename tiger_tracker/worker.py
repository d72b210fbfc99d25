"""
Ingestion worker: prepares the schema, seeds the reference catalog and runs
the ingestion cycle on a fixed interval.

Commands:
    run       Seed, then ingest forever (default deployment mode).
    once      Seed, then run exactly one cycle; exit non-zero on failure.
    seed      Seed the reference catalog only.
    init-db   Create tables and the transactions hypertable.
"""
import asyncio
from typing import Optional

import typer
from prometheus_client import start_http_server
from sqlalchemy.exc import SQLAlchemyError

from tiger_tracker.core.config import Settings, get_settings
from tiger_tracker.core.database import db_manager
from tiger_tracker.core.errors import IngestionError
from tiger_tracker.core.logging_config import get_logger, setup_logging
from tiger_tracker.db.init_db import init_db
from tiger_tracker.ingestion.catalog import ReferenceCatalog
from tiger_tracker.ingestion.pipeline import IngestionCycle
from tiger_tracker.ingestion.scheduler import Scheduler
from tiger_tracker.ingestion.sources.coingecko import CoinGeckoQuoteSource
from tiger_tracker.schemas.catalog import UserSpec

logger = get_logger("worker")

app = typer.Typer(add_completion=False)


def build_catalog(settings: Settings) -> ReferenceCatalog:
    return ReferenceCatalog(settings.TRACKED_ASSETS, UserSpec(name=settings.SEED_USER_NAME))


def build_cycle(settings: Settings, catalog: ReferenceCatalog) -> IngestionCycle:
    source = CoinGeckoQuoteSource(
        settings.TRACKED_ASSETS,
        api_key=settings.COINGECKO_API_KEY,
        request_timeout=settings.QUOTE_TIMEOUT_SECONDS,
    )
    return IngestionCycle(
        catalog,
        source,
        quote_timeout=settings.QUOTE_TIMEOUT_SECONDS,
        persist_timeout=settings.PERSIST_TIMEOUT_SECONDS,
    )


async def prepare_store():
    # Not reaching the store at all is a configuration failure: stop the process
    try:
        await init_db()
    except (SQLAlchemyError, OSError) as e:
        logger.critical("db_init_failed", error=str(e))
        raise typer.Exit(code=1)


async def run_worker(settings: Settings, max_cycles: Optional[int] = None):
    await prepare_store()
    catalog = build_catalog(settings)
    await catalog.seed_reference_data()

    scheduler = Scheduler(
        build_cycle(settings, catalog),
        interval_seconds=settings.INGEST_INTERVAL_SECONDS,
        halt_on_error=settings.HALT_ON_CYCLE_ERROR,
    )
    try:
        await scheduler.run_forever(max_cycles=max_cycles)
    finally:
        await db_manager.dispose()
    return scheduler


def _bootstrap() -> Settings:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    if settings.METRICS_PORT:
        start_http_server(settings.METRICS_PORT)
        logger.info("metrics_server_started", port=settings.METRICS_PORT)
    return settings


@app.command()
def run():
    """Seed the catalog, then ingest forever."""
    settings = _bootstrap()
    logger.info("worker_start", interval_s=settings.INGEST_INTERVAL_SECONDS, assets=[a.symbol for a in settings.TRACKED_ASSETS])
    try:
        asyncio.run(run_worker(settings))
    except IngestionError as e:
        logger.critical("worker_stopped", kind=e.kind, error=str(e))
        raise typer.Exit(code=1)


@app.command()
def once():
    """Seed the catalog and run a single ingestion cycle."""
    settings = _bootstrap()
    try:
        asyncio.run(run_worker(settings.model_copy(update={"HALT_ON_CYCLE_ERROR": True}), max_cycles=1))
    except IngestionError as e:
        logger.critical("cycle_failed", kind=e.kind, error=str(e))
        raise typer.Exit(code=1)
    logger.info("worker_finished")


@app.command()
def seed():
    """Upsert the configured user and assets."""
    settings = _bootstrap()

    async def _seed():
        await prepare_store()
        try:
            return await build_catalog(settings).seed_reference_data()
        finally:
            await db_manager.dispose()

    report = asyncio.run(_seed())
    if not report.ok:
        raise typer.Exit(code=1)


@app.command("init-db")
def init_db_command():
    """Create tables and the transactions hypertable."""
    _bootstrap()

    async def _init():
        try:
            await prepare_store()
        finally:
            await db_manager.dispose()

    asyncio.run(_init())


def main():
    app()


if __name__ == "__main__":
    main()
