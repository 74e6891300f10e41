# -*- coding: utf-8 -*-
"""
-------------------------------------------------------------------------------
 Name:          market_data.py
 Purpose:       Fetches and caches current quotes: equities from Twelve Data,
                crypto from CoinGecko. Returns PricePoint maps keyed by
                ticker for the accounting modules.

 Copyright:     (c) Lotfolio Contributors 2025
 Licence:       MIT
-------------------------------------------------------------------------------
SPDX-License-Identifier: MIT
"""

import colorsys
import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import requests

from config import (
    ASSET_TYPE_CRYPTO,
    AVATAR_LOGO_URL,
    CACHE_KEY_CRYPTO,
    CACHE_KEY_CRYPTO_INFO,
    CACHE_KEY_STOCKS,
    COINGECKO_API_BASE_URL,
    COINGECKO_API_KEY,
    CURRENT_QUOTE_CACHE_DURATION_MINUTES,
    DEFAULT_CRYPTO_MAP,
    DEFAULT_CURRENT_CACHE_FILE_PATH,
    HTTP_TIMEOUT_SECONDS,
    TWELVE_DATA_API_KEY,
    TWELVE_DATA_QUOTE_URL,
)
from finutils import to_decimal
from models import PricePoint, Transaction


def _ticker_hue(ticker: str) -> int:
    """Deterministic 0-359 hue for a ticker (32-bit string hash)."""
    hash_value = 0
    for char in ticker:
        hash_value = ord(char) + ((hash_value << 5) - hash_value)
        hash_value = (hash_value + 2**31) % 2**32 - 2**31
    return abs(hash_value) % 360


def get_ticker_color(ticker: str) -> str:
    """Hex color (no leading #) for a ticker's fallback avatar."""
    red, green, blue = colorsys.hls_to_rgb(_ticker_hue(ticker) / 360, 0.5, 0.7)
    return "".join(f"{round(c * 255):02x}" for c in (red, green, blue))


def get_stock_logo(ticker: str) -> str:
    return (
        f"{AVATAR_LOGO_URL}?name={ticker}&background={get_ticker_color(ticker)}"
        "&color=fff&bold=true"
    )


def _default_crypto_logo(ticker: str) -> str:
    return f"{AVATAR_LOGO_URL}?name={ticker}&background=random"


def _is_rate_limited(response: requests.Response, data: Optional[Dict] = None) -> bool:
    if response.status_code in (429, 403):
        return True
    message = str((data or {}).get("message", "")).lower()
    return "rate limit" in message or "quota" in message


def _parse_stock_quote(data: Any) -> Optional[Dict[str, Any]]:
    """Extracts price, change and name from one Twelve Data quote object."""
    if not isinstance(data, dict) or not data.get("close"):
        return None
    return {
        "currentPrice": to_decimal(data["close"]),
        "priceChange24h": to_decimal(data.get("percent_change") or 0),
        "name": data.get("name"),
    }


class MarketDataProvider:
    """
    Provides current quotes for stock and crypto tickers with a JSON file
    cache. Fresh cache entries skip the network; when a request fails or a
    ticker is missing from the response, an expired entry is used instead,
    and stocks without any cache fall back to a zero quote.
    """

    def __init__(
        self,
        current_cache_file: Optional[str] = None,
        twelve_data_api_key: Optional[str] = None,
        coingecko_api_key: Optional[str] = None,
        crypto_map: Optional[Mapping[str, Dict[str, str]]] = None,
        session: Optional[requests.Session] = None,
        cache_duration_minutes: float = CURRENT_QUOTE_CACHE_DURATION_MINUTES,
    ):
        self.current_cache_file = current_cache_file or DEFAULT_CURRENT_CACHE_FILE_PATH
        self.twelve_data_api_key = (
            TWELVE_DATA_API_KEY if twelve_data_api_key is None else twelve_data_api_key
        )
        self.coingecko_api_key = (
            COINGECKO_API_KEY if coingecko_api_key is None else coingecko_api_key
        )
        self.crypto_map = dict(DEFAULT_CRYPTO_MAP if crypto_map is None else crypto_map)
        self.cache_duration = timedelta(minutes=cache_duration_minutes)
        self._session = session or requests.Session()
        self.api_request_counter = {"twelve_data": 0, "coingecko": 0, "coingecko_search": 0}

    # --- Cache ---

    def _load_cache(self) -> Dict[str, Any]:
        if not os.path.exists(self.current_cache_file):
            return {}
        try:
            with open(self.current_cache_file, "r", encoding="utf-8") as f:
                cache = json.load(f)
            return cache if isinstance(cache, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"Error reading price cache {self.current_cache_file}: {e}")
            return {}

    def _save_cache(self, cache: Dict[str, Any]) -> None:
        try:
            with open(self.current_cache_file, "w", encoding="utf-8") as f:
                json.dump(cache, f, indent=2)
        except OSError as e:
            logging.warning(f"Error writing price cache {self.current_cache_file}: {e}")

    def _get_from_cache(
        self, cache_key: str, ticker: str, allow_expired: bool = False
    ) -> Optional[Dict[str, Any]]:
        entry = self._load_cache().get(cache_key, {}).get(ticker)
        if not isinstance(entry, dict) or "data" not in entry:
            return None
        if allow_expired:
            return entry["data"]
        try:
            cached_at = datetime.fromisoformat(entry["timestamp"])
        except (KeyError, TypeError, ValueError):
            return None
        if datetime.now(timezone.utc) - cached_at < self.cache_duration:
            return entry["data"]
        return None

    def _set_to_cache(self, cache_key: str, ticker: str, data: Dict[str, Any]) -> None:
        cache = self._load_cache()
        cache.setdefault(cache_key, {})[ticker] = {
            "data": {k: str(v) if k != "name" else v for k, v in data.items()},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._save_cache(cache)

    def _get_cached_batch(
        self, cache_key: str, tickers: Iterable[str]
    ) -> Tuple[Dict[str, Dict[str, Any]], List[str]]:
        cached_map: Dict[str, Dict[str, Any]] = {}
        uncached: List[str] = []
        for ticker in tickers:
            cached = self._get_from_cache(cache_key, ticker)
            if cached:
                cached_map[ticker] = cached
            else:
                uncached.append(ticker)
        return cached_map, uncached

    def _log_api_request(self, api: str, symbols: List[str]) -> None:
        self.api_request_counter[api] += 1
        total = sum(self.api_request_counter.values())
        logging.info(
            f"[{api}] API request #{self.api_request_counter[api]} | {len(symbols)} symbol(s): "
            f"{', '.join(symbols)} | total this session: {total}"
        )

    # --- Stocks ---

    def _stock_fallback(self, ticker: str) -> PricePoint:
        cached = self._get_from_cache(CACHE_KEY_STOCKS, ticker, allow_expired=True)
        if cached:
            return PricePoint.model_validate({**cached, "logo": get_stock_logo(ticker)})
        return PricePoint(logo=get_stock_logo(ticker))

    def get_stock_prices(self, tickers: Iterable[str]) -> Dict[str, PricePoint]:
        """
        Fetches current equity quotes in one batched Twelve Data request.

        Args:
            tickers: Equity symbols; duplicates and blanks are ignored.

        Returns:
            Dict[str, PricePoint]: One entry per requested ticker.
        """
        unique_tickers = list(dict.fromkeys(t.strip() for t in tickers if t and t.strip()))
        if not unique_tickers:
            return {}

        cached_map, uncached = self._get_cached_batch(CACHE_KEY_STOCKS, unique_tickers)
        price_map = {
            ticker: PricePoint.model_validate({**data, "logo": get_stock_logo(ticker)})
            for ticker, data in cached_map.items()
        }
        if cached_map:
            logging.info(f"[twelve_data] Cache hit - {len(cached_map)} symbol(s).")
        if not uncached:
            return price_map

        if not self.twelve_data_api_key:
            logging.warning("Twelve Data API key not found. Using cached or zero quotes.")
            price_map.update({t: self._stock_fallback(t) for t in uncached})
            return price_map

        self._log_api_request("twelve_data", uncached)
        try:
            response = self._session.get(
                TWELVE_DATA_QUOTE_URL,
                params={"symbol": ",".join(uncached), "apikey": self.twelve_data_api_key},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            if not response.ok:
                if _is_rate_limited(response):
                    logging.warning("Twelve Data rate limit hit, using cache.")
                else:
                    logging.warning(f"Twelve Data returned HTTP {response.status_code}.")
                price_map.update({t: self._stock_fallback(t) for t in uncached})
                return price_map
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logging.error(f"Error fetching stock prices: {e}")
            price_map.update({t: self._stock_fallback(t) for t in uncached})
            return price_map

        # One symbol returns the quote object itself, several return a map by symbol.
        is_single_symbol = len(uncached) == 1
        for ticker in uncached:
            stock_data = data if is_single_symbol else (data or {}).get(ticker)
            parsed = _parse_stock_quote(stock_data)
            if parsed:
                price_map[ticker] = PricePoint.model_validate(
                    {**parsed, "logo": get_stock_logo(ticker)}
                )
                self._set_to_cache(CACHE_KEY_STOCKS, ticker, parsed)
            else:
                logging.debug(f"No usable Twelve Data quote for {ticker}.")
                price_map[ticker] = self._stock_fallback(ticker)
        return price_map

    # --- Crypto ---

    def _crypto_headers(self) -> Dict[str, str]:
        return {"x-cg-demo-api-key": self.coingecko_api_key} if self.coingecko_api_key else {}

    def _crypto_logo(self, ticker: str) -> str:
        known = self.crypto_map.get(ticker, {})
        return known.get("logo") or _default_crypto_logo(ticker)

    def _search_crypto_by_ticker(self, ticker: str) -> Optional[Dict[str, str]]:
        """Resolves an unknown ticker to a CoinGecko id via /search (cached)."""
        cache = self._load_cache()
        info_cache = cache.get(CACHE_KEY_CRYPTO_INFO, {})
        if ticker in info_cache:
            return info_cache[ticker]

        self._log_api_request("coingecko_search", [ticker])
        try:
            response = self._session.get(
                f"{COINGECKO_API_BASE_URL}/search",
                params={"query": ticker},
                headers=self._crypto_headers(),
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            if not response.ok:
                return None
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logging.warning(f"CoinGecko search failed for {ticker}: {e}")
            return None

        match = next(
            (
                coin
                for coin in data.get("coins") or []
                if str(coin.get("symbol", "")).upper() == ticker.upper()
            ),
            None,
        )
        if not match:
            return None

        info = {
            "id": match.get("id"),
            "name": match.get("name"),
            "logo": match.get("large") or match.get("thumb") or _default_crypto_logo(ticker),
        }
        cache = self._load_cache()
        cache.setdefault(CACHE_KEY_CRYPTO_INFO, {})[ticker] = info
        self._save_cache(cache)
        return info

    def get_crypto_info(self, ticker: str) -> Dict[str, Optional[str]]:
        """Returns id, name and logo for a crypto ticker."""
        known = self.crypto_map.get(ticker)
        if known:
            return {"id": known.get("id"), "name": known.get("name", ticker), "logo": self._crypto_logo(ticker)}
        info = self._search_crypto_by_ticker(ticker)
        return info or {"id": None, "name": ticker, "logo": _default_crypto_logo(ticker)}

    def _crypto_point(self, ticker: str, data: Dict[str, Any]) -> PricePoint:
        info = self._load_cache().get(CACHE_KEY_CRYPTO_INFO, {}).get(ticker) or self.crypto_map.get(ticker, {})
        return PricePoint.model_validate(
            {
                **data,
                "name": data.get("name") or info.get("name") or ticker,
                "logo": info.get("logo") or self._crypto_logo(ticker),
            }
        )

    def _crypto_fallback(self, price_map: Dict[str, PricePoint], tickers: Iterable[str]) -> None:
        for ticker in tickers:
            cached = self._get_from_cache(CACHE_KEY_CRYPTO, ticker, allow_expired=True)
            if cached:
                price_map[ticker] = self._crypto_point(ticker, cached)

    def get_crypto_prices(self, tickers: Iterable[str]) -> Dict[str, PricePoint]:
        """
        Fetches current crypto quotes from CoinGecko in one batched request.

        Tickers are mapped to CoinGecko ids through `crypto_map`; unknown
        tickers are looked up with the search endpoint. Tickers that cannot
        be priced and have no cached quote are left out of the result.
        """
        unique_tickers = list(dict.fromkeys(t.strip() for t in tickers if t and t.strip()))
        if not unique_tickers:
            return {}

        cached_map, uncached = self._get_cached_batch(CACHE_KEY_CRYPTO, unique_tickers)
        price_map = {ticker: self._crypto_point(ticker, data) for ticker, data in cached_map.items()}
        if cached_map:
            logging.info(f"[coingecko] Cache hit - {len(cached_map)} symbol(s).")
        if not uncached:
            return price_map

        ticker_to_id: Dict[str, str] = {}
        for ticker in uncached:
            coin_id = self.crypto_map.get(ticker, {}).get("id")
            if not coin_id:
                coin_id = (self._search_crypto_by_ticker(ticker) or {}).get("id")
            if coin_id:
                ticker_to_id[ticker] = coin_id

        coin_ids = sorted(set(ticker_to_id.values()))
        if not coin_ids:
            self._crypto_fallback(price_map, uncached)
            return price_map

        self._log_api_request("coingecko", uncached)
        try:
            response = self._session.get(
                f"{COINGECKO_API_BASE_URL}/simple/price",
                params={
                    "ids": ",".join(coin_ids),
                    "vs_currencies": "usd",
                    "include_24hr_change": "true",
                },
                headers=self._crypto_headers(),
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            if not response.ok:
                logging.warning(f"CoinGecko returned HTTP {response.status_code}, using cache.")
                self._crypto_fallback(price_map, uncached)
                return price_map
            crypto_data = response.json()
        except (requests.RequestException, ValueError) as e:
            logging.error(f"Error fetching crypto prices: {e}")
            self._crypto_fallback(price_map, uncached)
            return price_map

        for ticker in uncached:
            live = (crypto_data or {}).get(ticker_to_id.get(ticker, ""))
            if not live:
                self._crypto_fallback(price_map, [ticker])
                continue
            quote = {
                "currentPrice": to_decimal(live.get("usd") or 0),
                "priceChange24h": to_decimal(live.get("usd_24h_change") or 0),
            }
            price_map[ticker] = self._crypto_point(ticker, quote)
            self._set_to_cache(CACHE_KEY_CRYPTO, ticker, quote)
        return price_map

    # --- Combined ---

    def get_prices_for_transactions(self, transactions: Iterable[Transaction]) -> Dict[str, PricePoint]:
        """Prices every ticker in the ledger with the provider for its asset type."""
        stock_tickers: List[str] = []
        crypto_tickers: List[str] = []
        for tx in transactions:
            target = crypto_tickers if tx.asset_type == ASSET_TYPE_CRYPTO else stock_tickers
            if tx.ticker not in target:
                target.append(tx.ticker)

        prices: Dict[str, PricePoint] = {}
        prices.update(self.get_stock_prices(stock_tickers))
        prices.update(self.get_crypto_prices(crypto_tickers))
        return prices
