import json
import math
from typing import Dict, Iterable, Optional, Protocol

import requests
from pycoingecko import CoinGeckoAPI

from tiger_tracker.core.errors import QuoteDecodeError, QuoteTransportError
from tiger_tracker.core.logging_config import get_logger
from tiger_tracker.schemas.catalog import AssetSpec

logger = get_logger("quote_coingecko")

SOURCE_NAME = "coingecko"


class QuoteSource(Protocol):
    name: str

    def fetch_quotes(self, symbols: Iterable[str]) -> Dict[str, float]:
        ...


class CoinGeckoQuoteSource:
    """
    Fetches USD spot prices from CoinGecko's /simple/price endpoint.
    Symbols are mapped to coin ids through the configured assets.
    Returns a price for every requested symbol or raises; never a partial map.
    """

    name = SOURCE_NAME

    def __init__(self, assets: Iterable[AssetSpec], api_key: Optional[str] = None, request_timeout: float = 15.0):
        self._coin_ids = {a.symbol: a.name for a in assets}
        # Retries disabled: a failed fetch waits for the next scheduled cycle
        if api_key:
            self._client = CoinGeckoAPI(demo_api_key=api_key, retries=0)
        else:
            self._client = CoinGeckoAPI(retries=0)
        self._client.request_timeout = request_timeout

    def fetch_quotes(self, symbols: Iterable[str]) -> Dict[str, float]:
        symbols = list(symbols)
        unknown = [s for s in symbols if s not in self._coin_ids]
        if unknown:
            raise QuoteDecodeError(f"no coin id configured for symbols: {', '.join(unknown)}")

        ids = [self._coin_ids[s] for s in symbols]
        logger.info("fetch_quotes", source=SOURCE_NAME, ids=ids)

        try:
            payload = self._client.get_price(ids=",".join(ids), vs_currencies="usd")
        except json.JSONDecodeError as e:
            raise QuoteDecodeError(f"malformed response from CoinGecko: {e}") from e
        except (requests.RequestException, ValueError) as e:
            # pycoingecko raises ValueError carrying the error body for HTTP failures
            raise QuoteTransportError(f"CoinGecko request failed: {e}") from e

        return self._decode(symbols, payload)

    def _decode(self, symbols, payload) -> Dict[str, float]:
        if not isinstance(payload, dict):
            raise QuoteDecodeError(f"unexpected CoinGecko payload type: {type(payload).__name__}")

        prices = {}
        for symbol in symbols:
            coin_id = self._coin_ids[symbol]
            row = payload.get(coin_id)
            if not isinstance(row, dict) or row.get("usd") is None:
                raise QuoteDecodeError(f"no usd price for {coin_id} ({symbol})")
            try:
                price = float(row["usd"])
            except (TypeError, ValueError) as e:
                raise QuoteDecodeError(f"non-numeric usd price for {coin_id}: {row['usd']!r}") from e
            if math.isnan(price) or math.isinf(price) or price < 0:
                raise QuoteDecodeError(f"invalid usd price for {coin_id}: {price}")
            prices[symbol] = price

        logger.info("quotes_decoded", source=SOURCE_NAME, prices=prices)
        return prices
