# -*- coding: utf-8 -*-
"""
-------------------------------------------------------------------------------
 Name:          models.py
 Purpose:       Record types exchanged between the transaction ledger, the
                market-data providers, the accounting engine and the
                presentation layer.

 Copyright:     (c) Lotfolio Contributors 2025
 Licence:       MIT
-------------------------------------------------------------------------------
SPDX-License-Identifier: MIT
"""

from datetime import date as date_type
from datetime import datetime, time as time_type
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.functional_validators import PlainValidator

from config import (
    ASSET_TYPE_CRYPTO,
    ASSET_TYPE_STOCK,
    TRANSACTION_TYPE_BUY,
    TRANSACTION_TYPE_SELL,
)
from finutils import ZERO, to_decimal

AssetType = Literal["Stock", "Crypto"]
TransactionType = Literal["Buy", "Sell"]
TimeWindow = Literal["7d", "1m", "3m", "ytd", "1y", "all"]

# Plain validator: pydantic's own Decimal validation rejects NaN, but malformed
# ledger numbers must flow through as NaN rather than fail the record.
DecimalValue = Annotated[Decimal, PlainValidator(to_decimal)]


def normalize_asset_type(asset_type: Any) -> str:
    """Collapses any asset-class spelling to "Stock" or "Crypto"."""
    if not asset_type or not isinstance(asset_type, str):
        return ASSET_TYPE_STOCK
    normalized = asset_type.replace("\n", "").strip().lower()
    return ASSET_TYPE_CRYPTO if normalized == "crypto" else ASSET_TYPE_STOCK


def normalize_transaction_type(tx_type: Any) -> str:
    """Capitalizes a transaction type ("BUY" -> "Buy"). Missing values mean Buy."""
    if not tx_type:
        return TRANSACTION_TYPE_BUY
    text = str(tx_type).strip()
    return text[:1].upper() + text[1:].lower()


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Transaction(_Record):
    """A single buy or sell row from the transaction ledger."""

    id: str
    ticker: str
    name: str = ""
    asset_type: AssetType = Field(ASSET_TYPE_STOCK, alias="assetType")
    type: TransactionType = TRANSACTION_TYPE_BUY
    quantity: DecimalValue = ZERO
    price: DecimalValue = ZERO
    date: date_type
    time: Optional[time_type] = None

    @model_validator(mode="before")
    @classmethod
    def _split_datetime_and_default_name(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw_date = data.get("date")
        if isinstance(raw_date, str) and ("T" in raw_date or " " in raw_date.strip()):
            parsed = pd.to_datetime(raw_date, errors="coerce")
            if not pd.isna(parsed):
                data["date"] = parsed.date()
                if not data.get("time") and parsed.time() != time_type.min:
                    data["time"] = parsed.time().replace(microsecond=0)
        elif isinstance(raw_date, datetime):
            data["date"] = raw_date.date()
            if not data.get("time") and raw_date.time() != time_type.min:
                data["time"] = raw_date.time()
        if not data.get("time"):
            data["time"] = None
        name = data.get("name")
        if name is None or not str(name).strip():
            data["name"] = str(data.get("ticker") or "").strip().upper()
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("ticker", mode="before")
    @classmethod
    def _normalize_ticker(cls, value: Any) -> str:
        ticker = "" if value is None else str(value).strip().upper()
        if not ticker:
            raise ValueError("ticker must not be empty")
        return ticker

    @field_validator("asset_type", mode="before")
    @classmethod
    def _normalize_asset_type(cls, value: Any) -> str:
        return normalize_asset_type(value)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        return normalize_transaction_type(value)

    @property
    def is_buy(self) -> bool:
        return self.type == TRANSACTION_TYPE_BUY

    @property
    def is_sell(self) -> bool:
        return self.type == TRANSACTION_TYPE_SELL

    @property
    def occurred_at(self) -> datetime:
        """Date plus time of day; transactions without a time sit at midnight."""
        return datetime.combine(self.date, self.time or time_type.min)


class PricePoint(_Record):
    """Current quote for one ticker. A missing quote is a zero PricePoint."""

    current_price: DecimalValue = Field(ZERO, alias="currentPrice")
    price_change_24h: DecimalValue = Field(ZERO, alias="priceChange24h")
    logo: Optional[str] = None
    name: Optional[str] = None


class Position(_Record):
    """Aggregate holding for one ticker with a positive remaining quantity."""

    ticker: str
    name: str
    asset_type: AssetType = Field(alias="assetType")
    quantity: DecimalValue
    total_cost: DecimalValue = Field(alias="totalCost")
    avg_price: DecimalValue = Field(alias="avgPrice")
    current_price: DecimalValue = Field(alias="currentPrice")
    price_change_24h: DecimalValue = Field(alias="priceChange24h")
    total_value: DecimalValue = Field(alias="totalValue")
    pnl: DecimalValue
    logo: Optional[str] = None
    transactions: Tuple[Transaction, ...] = ()


class TimelinePoint(_Record):
    """Portfolio value and cost basis at the end of a day, or at "Now"."""

    date: str
    value: DecimalValue
    cost_basis: DecimalValue = Field(alias="costBasis")
    timestamp: int
