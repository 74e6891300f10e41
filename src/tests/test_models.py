import sys
import os

# --- Add src directory to sys.path ---
src_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

from datetime import date, datetime, time
from decimal import Decimal

import pytest
from pydantic import ValidationError

from models import (
    PricePoint,
    Transaction,
    normalize_asset_type,
    normalize_transaction_type,
)


def ledger_record(**overrides):
    record = {
        "id": "rec1",
        "ticker": "aapl",
        "name": "Apple Inc.",
        "assetType": "Stock",
        "type": "Buy",
        "quantity": "10",
        "price": "150.25",
        "date": "2024-01-15",
    }
    record.update(overrides)
    return record


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Crypto", "Crypto"),
        ("crypto\n", "Crypto"),
        ("  CRYPTO ", "Crypto"),
        ("Stock", "Stock"),
        ("ETF", "Stock"),
        ("", "Stock"),
        (None, "Stock"),
        (42, "Stock"),
    ],
)
def test_normalize_asset_type(raw, expected):
    assert normalize_asset_type(raw) == expected


def test_normalize_transaction_type():
    assert normalize_transaction_type("SELL") == "Sell"
    assert normalize_transaction_type(" buy ") == "Buy"
    assert normalize_transaction_type(None) == "Buy"


def test_transaction_from_ledger_record():
    tx = Transaction.model_validate(ledger_record())
    assert tx.id == "rec1"
    assert tx.ticker == "AAPL"
    assert tx.asset_type == "Stock"
    assert tx.quantity == Decimal("10")
    assert tx.price == Decimal("150.25")
    assert tx.date == date(2024, 1, 15)
    assert tx.time is None
    assert tx.is_buy and not tx.is_sell
    assert tx.occurred_at == datetime(2024, 1, 15)


def test_transaction_defaults_name_to_ticker():
    tx = Transaction.model_validate(ledger_record(name="  "))
    assert tx.name == "AAPL"


def test_transaction_garbage_asset_type_becomes_stock():
    tx = Transaction.model_validate(ledger_record(assetType="Bond??"))
    assert tx.asset_type == "Stock"


def test_transaction_datetime_string_is_split():
    tx = Transaction.model_validate(ledger_record(date="2024-01-15T14:30:00"))
    assert tx.date == date(2024, 1, 15)
    assert tx.time == time(14, 30)
    assert tx.occurred_at == datetime(2024, 1, 15, 14, 30)


def test_transaction_midnight_datetime_has_no_time():
    tx = Transaction.model_validate(ledger_record(date="2024-01-15 00:00:00"))
    assert tx.time is None


def test_transaction_explicit_time_wins():
    tx = Transaction.model_validate(ledger_record(date="2024-01-15T14:30:00", time="09:15"))
    assert tx.time == time(9, 15)


def test_transaction_numeric_coercion():
    tx = Transaction.model_validate(ledger_record(quantity="1,234.5", price=0.1, id=17))
    assert tx.quantity == Decimal("1234.5")
    assert tx.price == Decimal("0.1")
    assert tx.id == "17"


def test_transaction_unparsable_number_becomes_nan():
    tx = Transaction.model_validate(ledger_record(price="n/a"))
    assert tx.price.is_nan()


def test_transaction_rejects_empty_ticker():
    with pytest.raises(ValidationError):
        Transaction.model_validate(ledger_record(ticker=" "))


def test_transaction_rejects_unknown_type():
    with pytest.raises(ValidationError):
        Transaction.model_validate(ledger_record(type="Transfer"))


def test_transaction_is_frozen():
    tx = Transaction.model_validate(ledger_record())
    with pytest.raises(ValidationError):
        tx.quantity = Decimal("1")


def test_price_point_defaults_and_aliases():
    assert PricePoint().current_price == 0
    assert PricePoint().price_change_24h == 0
    quote = PricePoint.model_validate({"currentPrice": "101.5", "priceChange24h": -1.25})
    assert quote.current_price == Decimal("101.5")
    assert quote.price_change_24h == Decimal("-1.25")
