from datetime import datetime, timedelta, timezone

import pytest

from tiger_tracker.services import analytics

T0 = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def minutes(n):
    return T0 + timedelta(minutes=n)


def test_bucket_series_averages_per_bucket():
    rows = [
        ("BTC", minutes(0), 100.0),
        ("BTC", minutes(2), 110.0),
        ("BTC", minutes(5), 120.0),
        ("ETH", minutes(1), 3000.0),
    ]

    series = analytics.bucket_series(rows, bucket_minutes=5)

    assert list(series) == ["BTC", "ETH"]
    assert series["BTC"].t == ["2026-10-19T12:00:00+00:00", "2026-10-19T12:05:00+00:00"]
    assert series["BTC"].v == pytest.approx([105.0, 120.0])
    assert series["ETH"].v == pytest.approx([3000.0])


def test_bucket_series_treats_naive_timestamps_as_utc():
    series = analytics.bucket_series([("SOL", minutes(3).replace(tzinfo=None), 150.0)])
    assert series["SOL"].t == ["2026-10-19T12:00:00+00:00"]


def test_strong_bullish_insight_with_anomalies():
    points = [(minutes(0), 100.0), (minutes(30), 101.0), (minutes(60), 103.0)]

    insight = analytics.build_insight("BTC", "bitcoin", points)

    assert insight.currentPrice == 103.0
    assert insight.price24hAgo == 100.0
    assert insight.change24h == pytest.approx(3.0)
    assert (insight.trend, insight.trendStrength) == ("bullish", "strong")
    assert insight.volatility == "high"
    assert insight.maxGain == pytest.approx(1.980198, rel=1e-5)
    assert insight.maxLoss == 0.0
    assert any(a.startswith("Sharp upward spike") for a in insight.anomalies)
    assert any(a.startswith("Unusual volatility pattern") for a in insight.anomalies)
    assert not any(a.startswith("Data gap") for a in insight.anomalies)
    assert "strong control" in insight.description


def test_flat_prices_are_stable_and_low_volatility():
    points = [(minutes(i), 3000.0) for i in range(5)]

    insight = analytics.build_insight("ETH", "ethereum", points)

    assert (insight.trend, insight.trendStrength) == ("stable", "weak")
    assert insight.volatility == "low"
    assert insight.anomalies == []


def test_modest_bearish_with_data_gap():
    points = [(minutes(0), 100.0), (minutes(45), 99.5), (minutes(50), 99.0)]

    insight = analytics.build_insight("SOL", "solana", points)

    assert (insight.trend, insight.trendStrength) == ("bearish", "modest")
    assert insight.change24h == pytest.approx(-1.0)
    assert insight.maxLoss == pytest.approx(-0.502513, rel=1e-5)
    assert "Data gap detected (45 min between updates)" in insight.anomalies


def test_points_are_sorted_before_analysis():
    points = [(minutes(10), 110.0), (minutes(0), 100.0)]
    insight = analytics.build_insight("BTC", "bitcoin", points)
    assert insight.price24hAgo == 100.0
    assert insight.currentPrice == 110.0


def test_single_point_has_no_change():
    insight = analytics.build_insight("BTC", "bitcoin", [(minutes(0), 100.0)])
    assert insight.change24h == 0.0
    assert insight.trend == "stable"


def test_build_insight_requires_points():
    with pytest.raises(ValueError):
        analytics.build_insight("BTC", "bitcoin", [])


def test_overall_trend():
    bull = analytics.build_insight("BTC", None, [(minutes(0), 100.0), (minutes(5), 110.0)])
    bear = analytics.build_insight("ETH", None, [(minutes(0), 100.0), (minutes(5), 90.0)])

    assert analytics.overall_trend([bull, bull]) == "bullish"
    assert analytics.overall_trend([bear]) == "bearish"
    assert analytics.overall_trend([bull, bear]) == "mixed"
    assert analytics.overall_trend([]) == "mixed"
