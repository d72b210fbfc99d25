import json

import pytest
import requests
from pycoingecko import CoinGeckoAPI

from tiger_tracker.core.errors import QuoteDecodeError, QuoteTransportError
from tiger_tracker.ingestion.sources.coingecko import CoinGeckoQuoteSource
from tiger_tracker.schemas.catalog import DEFAULT_ASSETS


def stub_get_price(monkeypatch, response=None, error=None):
    calls = []

    def fake_get_price(self, ids, vs_currencies, **kwargs):
        calls.append({"ids": ids, "vs_currencies": vs_currencies})
        if error is not None:
            raise error
        return response

    monkeypatch.setattr(CoinGeckoAPI, "get_price", fake_get_price)
    return calls


def test_fetch_maps_coin_ids_back_to_symbols(monkeypatch):
    calls = stub_get_price(monkeypatch, {
        "bitcoin": {"usd": 65000},
        "solana": {"usd": 150.25},
        "ethereum": {"usd": 3200.5},
    })
    source = CoinGeckoQuoteSource(DEFAULT_ASSETS)

    prices = source.fetch_quotes(["BTC", "SOL", "ETH"])

    assert prices == {"BTC": 65000.0, "SOL": 150.25, "ETH": 3200.5}
    assert isinstance(prices["BTC"], float)
    assert calls == [{"ids": "bitcoin,solana,ethereum", "vs_currencies": "usd"}]


def test_missing_coin_fails_whole_call(monkeypatch):
    stub_get_price(monkeypatch, {"bitcoin": {"usd": 65000}, "ethereum": {"usd": 3200.5}})
    source = CoinGeckoQuoteSource(DEFAULT_ASSETS)

    with pytest.raises(QuoteDecodeError, match="solana"):
        source.fetch_quotes(["BTC", "SOL", "ETH"])


@pytest.mark.parametrize("row", [{}, {"usd": None}, {"usd": "n/a"}, {"usd": -3}, "oops"])
def test_bad_price_rows_are_decode_errors(monkeypatch, row):
    stub_get_price(monkeypatch, {"bitcoin": row})
    source = CoinGeckoQuoteSource(DEFAULT_ASSETS)

    with pytest.raises(QuoteDecodeError):
        source.fetch_quotes(["BTC"])


def test_empty_body_is_not_treated_as_zero_prices(monkeypatch):
    stub_get_price(monkeypatch, [])
    source = CoinGeckoQuoteSource(DEFAULT_ASSETS)

    with pytest.raises(QuoteDecodeError):
        source.fetch_quotes(["BTC"])


def test_malformed_json_is_decode_error(monkeypatch):
    stub_get_price(monkeypatch, error=json.JSONDecodeError("Expecting value", "<html>", 0))
    source = CoinGeckoQuoteSource(DEFAULT_ASSETS)

    with pytest.raises(QuoteDecodeError):
        source.fetch_quotes(["BTC"])


@pytest.mark.parametrize("error", [
    requests.ConnectionError("connection refused"),
    requests.HTTPError("429 Too Many Requests"),
    ValueError({"status": {"error_code": 429, "error_message": "rate limited"}}),
])
def test_transport_failures(monkeypatch, error):
    stub_get_price(monkeypatch, error=error)
    source = CoinGeckoQuoteSource(DEFAULT_ASSETS)

    with pytest.raises(QuoteTransportError):
        source.fetch_quotes(["BTC"])


def test_unknown_symbol_is_rejected_before_calling_api(monkeypatch):
    calls = stub_get_price(monkeypatch, {})
    source = CoinGeckoQuoteSource(DEFAULT_ASSETS)

    with pytest.raises(QuoteDecodeError, match="DOGE"):
        source.fetch_quotes(["BTC", "DOGE"])
    assert calls == []


def test_request_timeout_is_applied():
    source = CoinGeckoQuoteSource(DEFAULT_ASSETS, api_key="demo-key", request_timeout=7)

    assert source._client.request_timeout == 7
