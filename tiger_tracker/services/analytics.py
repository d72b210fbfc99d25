"""
24h analytics over recorded observations, served by the read API.
Pure functions over (ts, price) points so they work on any SQL backend.
"""
import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from tiger_tracker.schemas.market import AssetInsight, SeriesPoints

Point = Tuple[datetime, float]

STABLE_CHANGE_PCT = 0.5
STRONG_CHANGE_PCT = 2.0
HIGH_VOLATILITY = 0.3
MODERATE_VOLATILITY = 0.1
LARGE_SWING_PCT = 0.5
SPIKE_PCT = 1.0
MAX_GAP_MINUTES = 30
LARGE_SWING_SHARE = 0.15

DESCRIPTIONS = {
    ("stable", "weak"): "Price has remained relatively flat over 24 hours. The market is consolidating with minimal directional movement.",
    ("bullish", "strong"): "Significant upward momentum. Buyers are in strong control, pushing prices higher.",
    ("bullish", "modest"): "Modest upward trend. Buyers are in control, gradually pushing prices higher.",
    ("bearish", "strong"): "Significant downward pressure. Sellers are dominating, driving prices lower.",
    ("bearish", "modest"): "Modest downward trend. Sellers are in control, gradually pushing prices lower.",
}


def as_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def bucket_series(rows: Iterable[Tuple[str, datetime, float]], bucket_minutes: int = 5) -> Dict[str, SeriesPoints]:
    """Average price per symbol per time bucket, buckets aligned to the epoch."""
    width = bucket_minutes * 60
    sums: Dict[str, Dict[int, List[float]]] = defaultdict(lambda: defaultdict(lambda: [0.0, 0]))

    for symbol, ts, price in rows:
        start = int(as_utc(ts).timestamp()) // width * width
        acc = sums[symbol][start]
        acc[0] += price
        acc[1] += 1

    series = {}
    for symbol in sorted(sums):
        buckets = sums[symbol]
        ordered = sorted(buckets)
        series[symbol] = SeriesPoints(
            t=[datetime.fromtimestamp(b, tz=timezone.utc).isoformat() for b in ordered],
            v=[buckets[b][0] / buckets[b][1] for b in ordered],
        )
    return series


def step_changes(points: Sequence[Point]) -> List[float]:
    # The first point has no predecessor and counts as a 0% step
    changes = [0.0]
    for (_, prev), (_, price) in zip(points, points[1:]):
        changes.append((price - prev) / prev * 100 if prev > 0 else 0.0)
    return changes


def gaps_minutes(points: Sequence[Point]) -> List[float]:
    return [
        (as_utc(ts) - as_utc(prev_ts)).total_seconds() / 60
        for (prev_ts, _), (ts, _) in zip(points, points[1:])
    ]


def classify_trend(change_pct: float) -> Tuple[str, str]:
    if abs(change_pct) < STABLE_CHANGE_PCT:
        return "stable", "weak"
    if change_pct > 0:
        return "bullish", "strong" if change_pct > STRONG_CHANGE_PCT else "modest"
    return "bearish", "strong" if change_pct < -STRONG_CHANGE_PCT else "modest"


def classify_volatility(avg_abs_change: float) -> str:
    if avg_abs_change >= HIGH_VOLATILITY:
        return "high"
    if avg_abs_change >= MODERATE_VOLATILITY:
        return "moderate"
    return "low"


def build_insight(symbol: str, name: Optional[str], points: Sequence[Point]) -> AssetInsight:
    if not points:
        raise ValueError(f"no observations for {symbol}")

    points = sorted(points, key=lambda p: as_utc(p[0]))
    current_price = points[-1][1]
    price_24h_ago = points[0][1]
    change = (current_price - price_24h_ago) / price_24h_ago * 100 if price_24h_ago > 0 else 0.0

    changes = step_changes(points)
    max_gain = max(max(changes), 0.0)
    max_loss = min(min(changes), 0.0)
    avg_volatility = sum(abs(c) for c in changes) / len(changes)
    large_swings = sum(1 for c in changes if abs(c) > LARGE_SWING_PCT)
    gaps = gaps_minutes(points)
    max_gap = max(gaps) if gaps else None

    trend, strength = classify_trend(change)

    anomalies = []
    if max_gain > SPIKE_PCT:
        anomalies.append(f"Sharp upward spike of +{max_gain:.2f}%")
    if max_loss < -SPIKE_PCT:
        anomalies.append(f"Sharp downward drop of {max_loss:.2f}%")
    if max_gap is not None and max_gap > MAX_GAP_MINUTES:
        anomalies.append(f"Data gap detected ({max_gap:.0f} min between updates)")
    if large_swings / len(points) > LARGE_SWING_SHARE:
        anomalies.append(f"Unusual volatility pattern ({large_swings / len(points) * 100:.1f}% large swings)")

    return AssetInsight(
        symbol=symbol,
        name=name,
        currentPrice=current_price,
        price24hAgo=price_24h_ago,
        change24h=change if math.isfinite(change) else 0.0,
        trend=trend,
        trendStrength=strength,
        volatility=classify_volatility(avg_volatility),
        avgVolatility=avg_volatility,
        maxGain=max_gain,
        maxLoss=max_loss,
        anomalies=anomalies,
        description=DESCRIPTIONS[(trend, strength)],
    )


def overall_trend(insights: Sequence[AssetInsight]) -> str:
    if insights and all(i.trend == "bullish" for i in insights):
        return "bullish"
    if insights and all(i.trend == "bearish" for i in insights):
        return "bearish"
    return "mixed"
