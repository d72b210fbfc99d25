"""
Response shapes for the dashboard API. Field names are camelCase where the
dashboard already consumes them that way.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class LatestPrice(BaseModel):
    symbol: str
    price: float


class LatestResponse(BaseModel):
    data: List[LatestPrice]


class SeriesPoints(BaseModel):
    t: List[str] = Field(default_factory=list, description="Bucket start, ISO-8601 UTC")
    v: List[float] = Field(default_factory=list, description="Average price in the bucket")


class SeriesResponse(BaseModel):
    data: Dict[str, SeriesPoints]


class AssetInsight(BaseModel):
    symbol: str
    name: Optional[str] = None
    currentPrice: float
    price24hAgo: float
    change24h: float
    trend: Literal["bullish", "bearish", "stable"]
    trendStrength: Literal["strong", "modest", "weak"]
    volatility: Literal["low", "moderate", "high"]
    avgVolatility: float
    maxGain: float
    maxLoss: float
    anomalies: List[str] = Field(default_factory=list)
    description: str


class InsightsSummary(BaseModel):
    overallTrend: Literal["bullish", "bearish", "mixed"]
    timestamp: str


class InsightsResponse(BaseModel):
    insights: List[AssetInsight]
    summary: InsightsSummary
