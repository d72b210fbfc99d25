"""
One ingestion cycle: fetch quotes, resolve catalog identities and persist one
observation per tracked asset in a single transaction.
A cycle either commits its whole batch or writes nothing.
"""
import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List

from prometheus_client import Counter, Gauge, Histogram
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from tiger_tracker.core.database import AsyncSessionLocal
from tiger_tracker.core.errors import (
    IngestionError,
    PersistError,
    QuoteDecodeError,
    QuoteFetchError,
    QuoteTransportError,
)
from tiger_tracker.core.logging_config import get_logger
from tiger_tracker.db.models import OBSERVED_QUANTITY, Asset, IngestionCheckpoint, Observation, User
from tiger_tracker.ingestion.catalog import ReferenceCatalog
from tiger_tracker.ingestion.sources.coingecko import QuoteSource
from tiger_tracker.schemas.ingestion import CycleReport

logger = get_logger("ingestion_cycle")

# --- Metrics ---
INGEST_RECORDS_WRITTEN = Counter('ingest_records_written_total', 'Observations committed', ['source'])
INGEST_CYCLE_DURATION = Histogram('ingest_cycle_duration_seconds', 'Ingestion cycle duration', ['source'])
INGEST_CYCLE_STATUS = Gauge('ingest_cycle_status', 'Last ingestion cycle status (1=Success, 0=Fail)', ['source'])
INGEST_CYCLE_FAILURES = Counter('ingest_cycle_failures_total', 'Failed ingestion cycles', ['source', 'kind'])

# --- Checkpoint Logic ---

async def update_checkpoint(session, source_name: str, status: str, records: int, duration: int, error: str | None = None, last_ts: datetime | None = None):
    result = await session.execute(select(IngestionCheckpoint).where(IngestionCheckpoint.source_name == source_name))
    cp = result.scalars().first()

    if cp:
        cp.last_status = status
        cp.records_processed = records
        cp.run_duration_ms = duration
        cp.error_log = error
        if last_ts is not None:
            cp.last_ingested_timestamp = last_ts
    else:
        cp = IngestionCheckpoint(
            source_name=source_name,
            last_status=status,
            records_processed=records,
            run_duration_ms=duration,
            error_log=error,
            last_ingested_timestamp=last_ts
        )
        session.add(cp)


def build_observations(ts: datetime, user: User, assets: List[Asset], quotes: Dict[str, float]) -> List[Observation]:
    missing = [a.symbol for a in assets if a.symbol not in quotes]
    if missing:
        raise QuoteDecodeError(f"quote source returned no price for: {', '.join(missing)}")

    return [
        Observation(
            ts=ts,
            user_id=user.id,
            asset_id=asset.id,
            amount=OBSERVED_QUANTITY,
            price_usd=float(quotes[asset.symbol]),
        )
        for asset in assets
    ]


def _consume_result(task: asyncio.Future):
    # An abandoned fetch may still fail; retrieve it so asyncio does not warn
    if not task.cancelled():
        task.exception()


class IngestionCycle:
    def __init__(
        self,
        catalog: ReferenceCatalog,
        quote_source: QuoteSource,
        session_factory: Callable = AsyncSessionLocal,
        quote_timeout: float = 15.0,
        persist_timeout: float = 15.0,
    ):
        self._catalog = catalog
        self._quote_source = quote_source
        self._session_factory = session_factory
        self._quote_timeout = quote_timeout
        self._persist_timeout = persist_timeout
        self._inflight = None

    @property
    def source_name(self) -> str:
        return self._quote_source.name

    async def _fetch(self, symbols: List[str]) -> Dict[str, float]:
        # A timed-out fetch thread cannot be cancelled; never run two requests at once
        if self._inflight is not None and not self._inflight.done():
            raise QuoteTransportError("previous quote fetch is still running")

        # pycoingecko is blocking, keep it off the event loop
        self._inflight = asyncio.ensure_future(asyncio.to_thread(self._quote_source.fetch_quotes, symbols))
        self._inflight.add_done_callback(_consume_result)
        try:
            return await asyncio.wait_for(asyncio.shield(self._inflight), timeout=self._quote_timeout)
        except QuoteFetchError:
            raise
        except asyncio.TimeoutError as e:
            raise QuoteTransportError(f"quote fetch exceeded {self._quote_timeout}s") from e
        except Exception as e:
            raise QuoteTransportError(f"quote fetch failed: {e}") from e

    async def _persist(self, observations: List[Observation]):
        async with self._session_factory() as session:
            async with session.begin():
                session.add_all(observations)

    async def _record(self, status: str, records: int, duration_ms: int, error: str | None = None, last_ts: datetime | None = None):
        INGEST_CYCLE_STATUS.labels(source=self.source_name).set(1 if status == "success" else 0)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await update_checkpoint(session, self.source_name, status, records, duration_ms, error=error, last_ts=last_ts)
        except (SQLAlchemyError, OSError) as e:
            logger.warning("checkpoint_update_failed", source=self.source_name, error=str(e))

    async def run_once(self) -> CycleReport:
        start_time = time.time()
        source_name = self.source_name
        symbols = self._catalog.symbols

        # 1. One timestamp for the whole batch
        ts = datetime.now(timezone.utc)
        logger.info("cycle_start", source=source_name, ts=ts.isoformat(), symbols=symbols)

        try:
            # 2. Extract
            quotes = await self._fetch(symbols)

            # 3. Resolve identities
            user = await self._catalog.resolve_user()
            assets = await self._catalog.resolve_assets(symbols)

            # 4. Load, all rows or none
            observations = build_observations(ts, user, assets, quotes)
            try:
                await asyncio.wait_for(self._persist(observations), timeout=self._persist_timeout)
            except asyncio.TimeoutError as e:
                raise PersistError(f"persist exceeded {self._persist_timeout}s") from e
            except (SQLAlchemyError, OSError) as e:
                raise PersistError(f"failed to persist batch: {e}") from e

        except IngestionError as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error("cycle_failure", source=source_name, kind=e.kind, error=str(e), duration_ms=duration_ms)
            INGEST_CYCLE_FAILURES.labels(source=source_name, kind=e.kind).inc()
            await self._record("failure", 0, duration_ms, error=str(e))
            raise

        # 5. Checkpoint + metrics
        duration_ms = int((time.time() - start_time) * 1000)
        await self._record("success", len(observations), duration_ms, last_ts=ts)

        INGEST_RECORDS_WRITTEN.labels(source=source_name).inc(len(observations))
        INGEST_CYCLE_DURATION.labels(source=source_name).observe(duration_ms / 1000.0)
        logger.info("cycle_success", source=source_name, records=len(observations), duration_ms=duration_ms)

        return CycleReport(
            source=source_name,
            timestamp=ts,
            records=len(observations),
            prices={a.symbol: quotes[a.symbol] for a in assets},
            duration_ms=duration_ms,
        )
