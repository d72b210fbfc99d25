"""
Read side of the tracker: latest prices, bucketed series and 24h insights for
the dashboard, plus ingestion checkpoint stats.
"""
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tiger_tracker.core.database import get_db
from tiger_tracker.db.models import Asset, IngestionCheckpoint, Observation
from tiger_tracker.schemas.market import (
    InsightsResponse,
    InsightsSummary,
    LatestPrice,
    LatestResponse,
    SeriesResponse,
)
from tiger_tracker.services import analytics

router = APIRouter()


async def fetch_window(db: AsyncSession, hours: int):
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
    query = (
        select(Asset.symbol, Asset.name, Observation.ts, Observation.price_usd)
        .join(Asset, Asset.id == Observation.asset_id)
        .where(Observation.ts >= cutoff)
        .order_by(Asset.symbol, Observation.ts)
    )
    result = await db.execute(query)
    return result.all()


@router.get("/latest", response_model=LatestResponse)
async def get_latest(db: AsyncSession = Depends(get_db)):
    """Most recent observed price per asset."""
    newest = (
        select(Observation.asset_id, func.max(Observation.ts).label("max_ts"))
        .group_by(Observation.asset_id)
        .subquery()
    )
    query = (
        select(Asset.symbol, Observation.price_usd)
        .join(Observation, Observation.asset_id == Asset.id)
        .join(newest, and_(newest.c.asset_id == Observation.asset_id, newest.c.max_ts == Observation.ts))
        .order_by(Asset.symbol)
    )
    result = await db.execute(query)
    return LatestResponse(data=[LatestPrice(symbol=symbol, price=price) for symbol, price in result.all()])


@router.get("/series", response_model=SeriesResponse)
async def get_series(
    hours: int = Query(24, ge=1, le=24 * 30),
    bucket_minutes: int = Query(5, ge=1, le=24 * 60),
    db: AsyncSession = Depends(get_db),
):
    rows = await fetch_window(db, hours)
    series = analytics.bucket_series(
        ((symbol, ts, price) for symbol, _, ts, price in rows),
        bucket_minutes=bucket_minutes,
    )
    return SeriesResponse(data=series)


@router.get("/insights", response_model=InsightsResponse)
async def get_insights(db: AsyncSession = Depends(get_db)):
    rows = await fetch_window(db, 24)

    points = defaultdict(list)
    names = {}
    for symbol, name, ts, price in rows:
        points[symbol].append((ts, price))
        names[symbol] = name

    insights = [analytics.build_insight(symbol, names[symbol], points[symbol]) for symbol in sorted(points)]
    return InsightsResponse(
        insights=insights,
        summary=InsightsSummary(
            overallTrend=analytics.overall_trend(insights),
            timestamp=datetime.now(timezone.utc).isoformat(),
        ),
    )


@router.get("/stats")
async def get_stats(db: AsyncSession = Depends(get_db)):
    """
    Returns ingestion checkpoints, one per quote source.
    """
    result = await db.execute(select(IngestionCheckpoint))
    checkpoints = result.scalars().all()

    stats = []
    for cp in checkpoints:
        stats.append({
            "source_name": cp.source_name,
            "status": cp.last_status,
            "records_processed": cp.records_processed,
            "last_ingested_at": cp.last_ingested_timestamp,
            "duration_ms": cp.run_duration_ms,
            "error_log": cp.error_log
        })

    return {"ingestion_stats": stats}
