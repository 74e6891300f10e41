# -*- coding: utf-8 -*-
"""
-------------------------------------------------------------------------------
 Name:          config.py
 Purpose:       Configuration constants for the lotfolio portfolio tracker.

 Copyright:     (c) Lotfolio Contributors 2025
 Licence:       MIT
-------------------------------------------------------------------------------
SPDX-License-Identifier: MIT
"""

import logging
import os

# --- Logging Configuration ---
# Scripts may override this with logging.basicConfig.
LOGGING_LEVEL = logging.WARNING

# --- Asset & Transaction Types ---
ASSET_TYPE_STOCK = "Stock"
ASSET_TYPE_CRYPTO = "Crypto"
TRANSACTION_TYPE_BUY = "Buy"
TRANSACTION_TYPE_SELL = "Sell"

# --- Timeline Configuration ---
TIME_WINDOWS = ("7d", "1m", "3m", "ytd", "1y", "all")
DEFAULT_TIME_WINDOW = "all"
TIMELINE_NOW_LABEL = "Now"

# --- Allocation Chart Configuration ---
ALLOCATION_MAX_SLICES = 7  # Remaining tickers are grouped into "Others"
ALLOCATION_OTHERS_LABEL = "Others"

# --- Display Formatting ---
MAX_QUANTITY_DECIMALS = 10
HIDDEN_VALUE_PLACEHOLDER = "****"
DEFAULT_NAME_TRUNCATE_LENGTH = 30

# --- Price Cache Configuration ---
DEFAULT_CURRENT_CACHE_FILE_PATH = "portfolio_price_cache.json"
CURRENT_QUOTE_CACHE_DURATION_MINUTES = 5
CACHE_KEY_STOCKS = "portfolio_price_cache_stocks"
CACHE_KEY_CRYPTO = "portfolio_price_cache_crypto"
CACHE_KEY_CRYPTO_INFO = "portfolio_crypto_info_cache"

# --- Market Data APIs ---
TWELVE_DATA_QUOTE_URL = "https://api.twelvedata.com/quote"
COINGECKO_API_BASE_URL = "https://api.coingecko.com/api/v3"
AVATAR_LOGO_URL = "https://ui-avatars.com/api/"
HTTP_TIMEOUT_SECONDS = 15

TWELVE_DATA_API_KEY = os.environ.get("TWELVE_DATA_API_KEY", "")
COINGECKO_API_KEY = os.environ.get("COINGECKO_API_KEY", "")

# Ticker -> CoinGecko coin id and logo. Passed into MarketDataProvider
# explicitly; the accounting modules never read it.
DEFAULT_CRYPTO_MAP = {
    "BTC": {
        "id": "bitcoin",
        "name": "Bitcoin",
        "logo": "https://assets.coingecko.com/coins/images/1/small/bitcoin.png",
    },
    "ETH": {
        "id": "ethereum",
        "name": "Ethereum",
        "logo": "https://assets.coingecko.com/coins/images/279/small/ethereum.png",
    },
    "SOL": {
        "id": "solana",
        "name": "Solana",
        "logo": "https://assets.coingecko.com/coins/images/4128/small/solana.png",
    },
    "BNB": {
        "id": "binancecoin",
        "name": "Binance Coin",
        "logo": "https://assets.coingecko.com/coins/images/825/small/binance-coin-logo.png",
    },
    "AVAX": {
        "id": "avalanche-2",
        "name": "Avalanche",
        "logo": "https://assets.coingecko.com/coins/images/12559/small/coin-round-red.png",
    },
    "DOGE": {
        "id": "dogecoin",
        "name": "Dogecoin",
        "logo": "https://assets.coingecko.com/coins/images/5/small/dogecoin.png",
    },
    "DOT": {
        "id": "polkadot",
        "name": "Polkadot",
        "logo": "https://assets.coingecko.com/coins/images/12171/small/polkadot.png",
    },
    "LINK": {
        "id": "chainlink",
        "name": "Chainlink",
        "logo": "https://assets.coingecko.com/coins/images/877/small/chainlink-new-logo.png",
    },
}

# --- Transaction Ledger (Airtable) ---
AIRTABLE_API_BASE_URL = "https://api.airtable.com/v0"
AIRTABLE_API_KEY = os.environ.get("AIRTABLE_API_KEY", "")
AIRTABLE_BASE_ID = os.environ.get("AIRTABLE_BASE_ID", "")
AIRTABLE_TABLE_ID = os.environ.get("AIRTABLE_TABLE_ID", "tblmeRh5qtO0IXt1V")

# Writes use field ids so renaming a column in the base does not break them.
# Reads come back keyed by field name.
AIRTABLE_FIELD_IDS = {
    "TICKER": "fldXkorxjB01Z1T8T",
    "NAME": "fldgN9jZYTpqGrVc8",
    "TYPE": "fldh9jRUPOK57WXca",
    "PRICE": "fldoRxJO8RQ8imRWN",
    "QUANTITY": "fldWytbHnrVNx0j6o",
    "ASSET_CLASS": "fldI3N8n39cxzwetg",
    "TOTAL_COST": "fldsLa3vHeoy9Cu5f",
    "DATE": "fldtLF3YmzNZQWmgN",
}
AIRTABLE_SELECT_FIELD_ERRORS = (
    "Insufficient permissions to create new select option",
    "invalid value for select",
    "Invalid enum value",
)
