# tests/test_portfolio_analyzer.py

import os
import sys
from decimal import Decimal

import pandas as pd
import pytest

# --- Add src directory to sys.path for module import ---
src_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)
# --- End Path Addition ---

from models import PricePoint, Transaction
from portfolio_analyzer import (
    REALIZED_GAINS_COLUMNS,
    calculate_allocation,
    calculate_portfolio_totals,
    compute_positions,
    extract_realized_gains_history,
    positions_to_dataframe,
    replay_sort_key,
    sort_transactions_for_replay,
)


def make_tx(tx_id, ticker, tx_type, quantity, price, date, time=None, asset_type="Stock"):
    return Transaction(
        id=tx_id,
        ticker=ticker,
        type=tx_type,
        quantity=quantity,
        price=price,
        date=date,
        time=time,
        asset_type=asset_type,
    )


@pytest.fixture
def aapl_fifo_ledger():
    """Buy 10@100, Buy 5@120, Sell 12@140."""
    return [
        make_tx("t1", "AAPL", "Buy", "10", "100", "2024-01-01"),
        make_tx("t2", "AAPL", "Buy", "5", "120", "2024-02-01"),
        make_tx("t3", "AAPL", "Sell", "12", "140", "2024-03-01"),
    ]


@pytest.fixture
def aapl_prices():
    return {"AAPL": PricePoint(current_price="150", price_change_24h="2", logo="aapl.png")}


# --- Lot Accountant ---


def test_compute_positions_empty_ledger():
    assert compute_positions([], {}) == []


def test_buys_only_conserve_quantity_and_cost():
    ledger = [
        make_tx("a", "MSFT", "Buy", "1.5", "300.10", "2024-01-01"),
        make_tx("b", "MSFT", "Buy", "2.25", "310.20", "2024-01-05"),
        make_tx("c", "MSFT", "Buy", "0.1", "299.99", "2024-01-09"),
    ]
    (position,) = compute_positions(ledger, {"MSFT": PricePoint(current_price="320")})

    assert position.quantity == Decimal("3.85")
    expected_cost = (
        Decimal("1.5") * Decimal("300.10")
        + Decimal("2.25") * Decimal("310.20")
        + Decimal("0.1") * Decimal("299.99")
    )
    assert position.total_cost == expected_cost


def test_fifo_sell_consumes_oldest_lot_first(aapl_fifo_ledger, aapl_prices):
    (position,) = compute_positions(aapl_fifo_ledger, aapl_prices)

    assert position.ticker == "AAPL"
    assert position.quantity == Decimal("3")
    assert position.total_cost == Decimal("360")
    assert position.avg_price == Decimal("120")
    assert position.current_price == Decimal("150")
    assert position.total_value == Decimal("450")
    assert position.pnl == Decimal("90")
    assert position.logo == "aapl.png"
    assert len(position.transactions) == 3


def test_sell_price_does_not_change_cost_basis(aapl_fifo_ledger, aapl_prices):
    cheap_sell = list(aapl_fifo_ledger[:2]) + [
        make_tx("t3", "AAPL", "Sell", "12", "1", "2024-03-01")
    ]
    (expensive,) = compute_positions(aapl_fifo_ledger, aapl_prices)
    (cheap,) = compute_positions(cheap_sell, aapl_prices)
    assert expensive.total_cost == cheap.total_cost == Decimal("360")


def test_fully_sold_ticker_is_excluded():
    ledger = [
        make_tx("1", "TSLA", "Buy", "4", "200", "2024-01-01"),
        make_tx("2", "TSLA", "Buy", "6", "210", "2024-01-02"),
        make_tx("3", "TSLA", "Sell", "7", "220", "2024-01-03"),
        make_tx("4", "TSLA", "Sell", "3", "230", "2024-01-04"),
        make_tx("5", "NVDA", "Buy", "1", "500", "2024-01-04"),
    ]
    positions = compute_positions(ledger, {})
    assert [p.ticker for p in positions] == ["NVDA"]


def test_same_instant_buy_replays_before_sell_regardless_of_input_order():
    buy = make_tx("z-buy", "ETH", "Buy", "2", "1000", "2024-05-01", "10:00", "Crypto")
    sell = make_tx("a-sell", "ETH", "Sell", "1", "1500", "2024-05-01", "10:00", "Crypto")

    for ledger in ([buy, sell], [sell, buy]):
        (position,) = compute_positions(ledger, {})
        assert position.quantity == Decimal("1")
        assert position.total_cost == Decimal("1000")


def test_time_of_day_orders_transactions_within_a_day():
    ledger = [
        make_tx("s", "SOL", "Sell", "1", "30", "2024-05-01", "15:00", "Crypto"),
        make_tx("b2", "SOL", "Buy", "1", "20", "2024-05-01", "12:00", "Crypto"),
        make_tx("b1", "SOL", "Buy", "1", "10", "2024-05-01", "09:00", "Crypto"),
    ]
    (position,) = compute_positions(ledger, {})
    # The 09:00 lot at 10 is consumed first.
    assert position.total_cost == Decimal("20")


def test_replay_sort_key_is_total_on_id():
    first = make_tx("a", "X", "Buy", "1", "1", "2024-01-01")
    second = make_tx("b", "X", "Buy", "1", "2", "2024-01-01")
    assert replay_sort_key(first) < replay_sort_key(second)
    assert sort_transactions_for_replay([second, first]) == [first, second]


def test_date_granularity_ignores_time_of_day():
    late_buy = make_tx("1", "X", "Buy", "1", "1", "2024-01-01", "23:00")
    early_sell = make_tx("2", "X", "Sell", "1", "1", "2024-01-01", "01:00")
    assert sort_transactions_for_replay([early_sell, late_buy], "date") == [late_buy, early_sell]
    assert sort_transactions_for_replay([late_buy, early_sell], "datetime") == [early_sell, late_buy]


def test_unknown_granularity_raises():
    with pytest.raises(ValueError):
        replay_sort_key(make_tx("1", "X", "Buy", "1", "1", "2024-01-01"), "week")


def test_compute_positions_is_repeatable_and_does_not_mutate(aapl_fifo_ledger, aapl_prices):
    ledger_before = list(aapl_fifo_ledger)
    prices_before = dict(aapl_prices)
    shuffled = list(reversed(aapl_fifo_ledger))

    first = compute_positions(aapl_fifo_ledger, aapl_prices)
    second = compute_positions(shuffled, aapl_prices)

    assert first == second
    assert aapl_fifo_ledger == ledger_before
    assert aapl_prices == prices_before


def test_missing_price_values_position_at_zero(aapl_fifo_ledger):
    (position,) = compute_positions(aapl_fifo_ledger, {})
    assert position.current_price == 0
    assert position.total_value == 0
    assert position.pnl == -position.total_cost
    assert position.logo is None


def test_price_map_accepts_plain_dicts(aapl_fifo_ledger):
    (position,) = compute_positions(aapl_fifo_ledger, {"AAPL": {"currentPrice": 150}})
    assert position.total_value == Decimal("450")


def test_undersell_drives_quantity_negative_and_drops_position(caplog):
    ledger = [
        make_tx("1", "AMD", "Buy", "2", "100", "2024-01-01"),
        make_tx("2", "AMD", "Sell", "5", "120", "2024-01-02"),
    ]
    with caplog.at_level("WARNING"):
        positions = compute_positions(ledger, {})
    assert positions == []
    assert "exceeds open lots" in caplog.text


def test_undersell_then_rebuy_keeps_uncosted_shortfall():
    ledger = [
        make_tx("1", "AMD", "Buy", "2", "100", "2024-01-01"),
        make_tx("2", "AMD", "Sell", "3", "120", "2024-01-02"),
        make_tx("3", "AMD", "Buy", "5", "50", "2024-01-03"),
    ]
    (position,) = compute_positions(ledger, {})
    # -1 units and 0 cost before the rebuy.
    assert position.quantity == Decimal("4")
    assert position.total_cost == Decimal("250")


def test_nan_price_propagates_without_raising():
    ledger = [make_tx("1", "BAD", "Buy", "2", "not-a-number", "2024-01-01")]
    (position,) = compute_positions(ledger, {"BAD": PricePoint(current_price="10")})
    assert position.total_cost.is_nan()
    assert position.pnl.is_nan()
    assert position.total_value == Decimal("20")


def test_nan_quantity_is_excluded():
    ledger = [make_tx("1", "BAD", "Buy", "abc", "10", "2024-01-01")]
    assert compute_positions(ledger, {}) == []


@pytest.mark.parametrize("quantity", ["sNaN", "inf", "-Infinity", Decimal("Infinity")])
def test_non_finite_quantity_degrades_to_nan(quantity):
    ledger = [
        make_tx("1", "BAD", "Buy", quantity, "0", "2024-01-01"),
        make_tx("2", "BAD", "Sell", quantity, "0", "2024-01-02"),
        make_tx("3", "OK", "Buy", "1", "5", "2024-01-03"),
    ]
    positions = compute_positions(ledger, {"OK": PricePoint(current_price="6")})
    assert [p.ticker for p in positions] == ["OK"]


def test_infinite_price_degrades_to_nan():
    ledger = [make_tx("1", "BAD", "Buy", "2", "Infinity", "2024-01-01")]
    (position,) = compute_positions(ledger, {"BAD": PricePoint(current_price="inf")})
    assert position.total_cost.is_qnan()
    assert position.current_price.is_qnan()
    assert position.pnl.is_qnan()


def test_positions_follow_first_replayed_transaction_order():
    ledger = [
        make_tx("1", "ZZZ", "Buy", "1", "1", "2024-03-01"),
        make_tx("2", "AAA", "Buy", "1", "1", "2024-02-01"),
        make_tx("3", "MMM", "Buy", "1", "1", "2024-01-01"),
    ]
    assert [p.ticker for p in compute_positions(ledger)] == ["MMM", "AAA", "ZZZ"]


# --- Portfolio Metrics ---


def test_calculate_portfolio_totals():
    ledger = [
        make_tx("1", "AAA", "Buy", "10", "10", "2024-01-01"),
        make_tx("2", "BBB", "Buy", "1", "100", "2024-01-01"),
    ]
    prices = {
        "AAA": PricePoint(current_price="15", price_change_24h="10"),
        "BBB": PricePoint(current_price="80", price_change_24h="0"),
    }
    totals = calculate_portfolio_totals(compute_positions(ledger, prices))

    assert totals["total_value"] == Decimal("230")
    assert totals["total_cost_basis"] == Decimal("200")
    assert totals["total_pnl"] == Decimal("30")
    assert totals["total_pnl_percent"] == Decimal("15")
    assert totals["total_24h_change"] == Decimal("15")
    assert totals["total_24h_change_percent"] == Decimal("15") / Decimal("215") * 100
    assert totals["best_performer"].ticker == "AAA"
    assert totals["worst_performer"].ticker == "BBB"


def test_calculate_portfolio_totals_empty():
    totals = calculate_portfolio_totals([])
    assert totals["total_value"] == 0
    assert totals["total_pnl_percent"] == 0
    assert totals["best_performer"] is None
    assert totals["worst_performer"] is None


def test_calculate_allocation_groups_small_slices():
    ledger = [
        make_tx(str(i), f"T{i}", "Buy", "1", "1", "2024-01-01") for i in range(1, 10)
    ]
    prices = {f"T{i}": PricePoint(current_price=str(i)) for i in range(1, 10)}
    allocation = calculate_allocation(compute_positions(ledger, prices), max_slices=3)

    assert [item["name"] for item in allocation] == ["T9", "T8", "T7", "Others"]
    assert allocation[-1]["value"] == Decimal(sum(range(1, 7)))


def test_calculate_allocation_skips_worthless_positions():
    ledger = [make_tx("1", "A", "Buy", "1", "1", "2024-01-01")]
    assert calculate_allocation(compute_positions(ledger, {})) == []


# --- Realized Gains ---


def test_extract_realized_gains_history(aapl_fifo_ledger):
    df = extract_realized_gains_history(aapl_fifo_ledger)

    assert list(df.columns) == REALIZED_GAINS_COLUMNS
    assert len(df) == 1
    row = df.iloc[0]
    assert row["Ticker"] == "AAPL"
    assert row["Quantity"] == Decimal("12")
    assert row["Proceeds"] == Decimal("1680")
    assert row["Cost Basis"] == Decimal("1240")
    assert row["Realized Gain"] == Decimal("440")
    assert row["Transaction ID"] == "t3"


def test_realized_gains_only_count_covered_units():
    ledger = [
        make_tx("1", "X", "Buy", "2", "10", "2024-01-01"),
        make_tx("2", "X", "Sell", "5", "20", "2024-01-02"),
    ]
    row = extract_realized_gains_history(ledger).iloc[0]
    assert row["Quantity"] == Decimal("2")
    assert row["Realized Gain"] == Decimal("20")


def test_realized_gains_empty_when_no_sells():
    df = extract_realized_gains_history([make_tx("1", "X", "Buy", "1", "1", "2024-01-01")])
    assert df.empty
    assert list(df.columns) == REALIZED_GAINS_COLUMNS


def test_positions_to_dataframe(aapl_fifo_ledger, aapl_prices):
    df = positions_to_dataframe(compute_positions(aapl_fifo_ledger, aapl_prices))
    assert df.loc[0, "Ticker"] == "AAPL"
    assert df.loc[0, "Market Value"] == pytest.approx(450.0)
    assert pd.api.types.is_float_dtype(df["Unrealized P/L"])
