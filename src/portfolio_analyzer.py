# -*- coding: utf-8 -*-
"""
-------------------------------------------------------------------------------
 Name:          portfolio_analyzer.py
 Purpose:       FIFO lot accounting. Turns the transaction ledger and current
                quotes into per-ticker positions (quantity, remaining cost
                basis, average price, unrealized P/L), plus the summary
                metrics, allocation and realized-gain views built on them.

 Copyright:     (c) Lotfolio Contributors 2025
 Licence:       MIT
-------------------------------------------------------------------------------
SPDX-License-Identifier: MIT
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from config import ALLOCATION_MAX_SLICES, ALLOCATION_OTHERS_LABEL
from finutils import ZERO, decimal_sum, is_positive, safe_divide
from models import PricePoint, Position, Transaction

ZERO_PRICE_POINT = PricePoint()

REPLAY_GRANULARITIES = ("datetime", "date")


# --- Replay Ordering ---


def replay_sort_key(tx: Transaction, granularity: str = "datetime") -> Tuple:
    """
    Sort key placing transactions in FIFO replay order.

    Primary key is when the transaction happened: date plus time of day for
    the "datetime" granularity, the calendar date alone for "date". On ties a
    Buy always precedes a Sell, so a sell never misses a lot recorded at the
    same instant. The transaction id breaks any remaining tie, which makes the
    order total and independent of input order.
    """
    if granularity == "datetime":
        when = tx.occurred_at
    elif granularity == "date":
        when = tx.date
    else:
        raise ValueError(
            f"Unknown replay granularity '{granularity}'. Expected one of {REPLAY_GRANULARITIES}."
        )
    return (when, 0 if tx.is_buy else 1, tx.id)


def sort_transactions_for_replay(
    transactions: Iterable[Transaction], granularity: str = "datetime"
) -> List[Transaction]:
    """Returns a new list in replay order; the input is left untouched."""
    return sorted(transactions, key=lambda tx: replay_sort_key(tx, granularity))


# --- FIFO Primitives ---


def _new_holding() -> Dict[str, Any]:
    """Per-ticker accumulator: net quantity, remaining cost and the lot queue."""
    return {"quantity": ZERO, "total_cost": ZERO, "lots": []}


def _apply_buy(holding: Dict[str, Any], tx: Transaction) -> None:
    holding["quantity"] += tx.quantity
    holding["total_cost"] += tx.quantity * tx.price
    holding["lots"].append({"quantity": tx.quantity, "price": tx.price})


def _apply_sell(holding: Dict[str, Any], tx: Transaction) -> Tuple[Decimal, Decimal]:
    """
    Consumes lots oldest-first for a sell.

    Exhausted lots stay in the queue and are skipped. The holding's quantity
    drops by the full sell quantity but its cost only by what the consumed
    lots cost; the sell price does not touch the cost basis. Selling more
    than the queue holds leaves the shortfall uncosted, so quantity (and
    possibly cost) can go negative. That is reported, not corrected.

    Returns:
        Tuple[Decimal, Decimal]: (cost removed, quantity covered by lots).
    """
    remaining_to_sell = tx.quantity
    cost_removed = ZERO

    for lot in holding["lots"]:
        if not is_positive(remaining_to_sell):
            break
        if not is_positive(lot["quantity"]):
            continue
        units_from_lot = min(remaining_to_sell, lot["quantity"])
        cost_removed += units_from_lot * lot["price"]
        lot["quantity"] -= units_from_lot
        remaining_to_sell -= units_from_lot

    covered = tx.quantity - remaining_to_sell
    if is_positive(remaining_to_sell):
        logging.warning(
            f"Sell {tx.id} of {tx.quantity} {tx.ticker} on {tx.date} exceeds open lots; "
            f"only {covered} units were covered."
        )

    holding["quantity"] -= tx.quantity
    holding["total_cost"] -= cost_removed
    return cost_removed, covered


def _apply_transaction(holding: Dict[str, Any], tx: Transaction) -> Tuple[Decimal, Decimal]:
    if tx.is_buy:
        _apply_buy(holding, tx)
        return ZERO, ZERO
    return _apply_sell(holding, tx)


def _lookup_price(prices: Optional[Mapping[str, Any]], ticker: str) -> PricePoint:
    """Returns the quote for a ticker, or a zero PricePoint when it is missing."""
    if not prices:
        return ZERO_PRICE_POINT
    quote = prices.get(ticker)
    if quote is None:
        return ZERO_PRICE_POINT
    if isinstance(quote, PricePoint):
        return quote
    return PricePoint.model_validate(quote)


# --- Lot Accountant ---


def compute_positions(
    transactions: Iterable[Transaction],
    prices: Optional[Mapping[str, Any]] = None,
) -> List[Position]:
    """
    Replays the ledger with FIFO lot consumption and values what is still held.

    Args:
        transactions: Buy/Sell transactions for any number of tickers, in any order.
        prices: Ticker -> PricePoint (or a dict with the same fields). Missing
            tickers are valued at zero.

    Returns:
        List[Position]: One position per ticker whose final quantity is above
        zero, in order of the ticker's first replayed transaction. Tickers
        that were fully sold (or oversold) are left out.
    """
    holdings: Dict[str, Dict[str, Any]] = {}

    for tx in sort_transactions_for_replay(transactions, "datetime"):
        holding = holdings.get(tx.ticker)
        if holding is None:
            holding = _new_holding()
            holding.update(name=tx.name, asset_type=tx.asset_type, transactions=[])
            holdings[tx.ticker] = holding
        holding["transactions"].append(tx)
        _apply_transaction(holding, tx)

    positions: List[Position] = []
    for ticker, holding in holdings.items():
        quantity = holding["quantity"]
        if not is_positive(quantity):
            logging.debug(f"{ticker}: closed position (quantity {quantity}), excluded.")
            continue

        quote = _lookup_price(prices, ticker)
        total_cost = holding["total_cost"]
        total_value = quantity * quote.current_price

        positions.append(
            Position(
                ticker=ticker,
                name=holding["name"],
                asset_type=holding["asset_type"],
                quantity=quantity,
                total_cost=total_cost,
                avg_price=total_cost / quantity,
                current_price=quote.current_price,
                price_change_24h=quote.price_change_24h,
                total_value=total_value,
                pnl=total_value - total_cost,
                logo=quote.logo,
                transactions=tuple(holding["transactions"]),
            )
        )

    logging.debug(
        f"compute_positions: {len(positions)} open positions from {len(holdings)} tickers."
    )
    return positions


# --- Portfolio Metrics ---


def _performance_ratio(position: Position) -> Decimal:
    ratio = safe_divide(position.pnl, position.total_cost)
    return ZERO if ratio.is_nan() else ratio


def calculate_portfolio_totals(positions: List[Position]) -> Dict[str, Any]:
    """
    Aggregates positions into dashboard totals.

    Returns:
        Dict[str, Any]: total_value, total_cost_basis, total_pnl,
        total_pnl_percent, total_24h_change, total_24h_change_percent,
        best_performer and worst_performer (ranked by pnl / cost basis,
        None when there are no positions).
    """
    total_value = decimal_sum(p.total_value for p in positions)
    total_cost_basis = decimal_sum(p.total_cost for p in positions)
    total_pnl = decimal_sum(p.pnl for p in positions)
    total_24h_change = decimal_sum(
        p.price_change_24h / 100 * p.current_price * p.quantity for p in positions
    )

    # Change relative to yesterday's value, i.e. today's value minus the change.
    change_percent = ZERO
    if is_positive(total_value):
        change_percent = safe_divide(abs(total_24h_change), total_value - total_24h_change) * 100

    ranked = sorted(positions, key=_performance_ratio, reverse=True)

    return {
        "total_value": total_value,
        "total_cost_basis": total_cost_basis,
        "total_pnl": total_pnl,
        "total_pnl_percent": safe_divide(total_pnl, total_cost_basis) * 100,
        "total_24h_change": total_24h_change,
        "total_24h_change_percent": change_percent,
        "best_performer": ranked[0] if ranked else None,
        "worst_performer": ranked[-1] if ranked else None,
    }


def calculate_allocation(
    positions: List[Position], max_slices: int = ALLOCATION_MAX_SLICES
) -> List[Dict[str, Any]]:
    """
    Splits portfolio value by ticker for the allocation chart.

    Positions without a positive value are skipped. When more than
    `max_slices` tickers remain, the smallest ones are summed into a single
    "Others" slice.
    """
    slices = [
        {"name": p.ticker, "value": p.total_value}
        for p in positions
        if is_positive(p.total_value)
    ]
    slices.sort(key=lambda item: item["value"], reverse=True)

    if len(slices) <= max_slices:
        return slices

    others = decimal_sum(item["value"] for item in slices[max_slices:])
    return slices[:max_slices] + [{"name": ALLOCATION_OTHERS_LABEL, "value": others}]


REALIZED_GAINS_COLUMNS = [
    "Date",
    "Ticker",
    "Quantity",
    "Sale Price",
    "Proceeds",
    "Cost Basis",
    "Realized Gain",
    "Transaction ID",
]


def extract_realized_gains_history(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """
    Lists the realized gain of every sell under the same FIFO replay.

    Position P/L stays unrealized only; this view is separate and never feeds
    back into it. Proceeds and gain only count the part of a sell that was
    covered by open lots.

    Returns:
        pd.DataFrame: One row per sell with covered quantity, columns as in
        REALIZED_GAINS_COLUMNS, sorted by date then ticker.
    """
    holdings: Dict[str, Dict[str, Any]] = {}
    records: List[Dict[str, Any]] = []

    for tx in sort_transactions_for_replay(transactions, "datetime"):
        holding = holdings.setdefault(tx.ticker, _new_holding())
        cost_removed, covered = _apply_transaction(holding, tx)
        if not tx.is_sell or not is_positive(covered):
            continue
        proceeds = covered * tx.price
        records.append(
            {
                "Date": tx.date,
                "Ticker": tx.ticker,
                "Quantity": covered,
                "Sale Price": tx.price,
                "Proceeds": proceeds,
                "Cost Basis": cost_removed,
                "Realized Gain": proceeds - cost_removed,
                "Transaction ID": tx.id,
            }
        )

    if not records:
        logging.info("No realized gains found after processing all transactions.")
        return pd.DataFrame(columns=REALIZED_GAINS_COLUMNS)

    df_gains = pd.DataFrame(records, columns=REALIZED_GAINS_COLUMNS)
    df_gains.sort_values(by=["Date", "Ticker"], inplace=True, kind="stable")
    df_gains.reset_index(drop=True, inplace=True)
    logging.info(f"Extracted {len(df_gains)} realized gain records.")
    return df_gains


POSITION_COLUMNS = {
    "ticker": "Ticker",
    "name": "Name",
    "asset_type": "Asset Type",
    "quantity": "Quantity",
    "avg_price": "Avg Price",
    "current_price": "Price",
    "price_change_24h": "24h %",
    "total_cost": "Cost Basis",
    "total_value": "Market Value",
    "pnl": "Unrealized P/L",
}


def positions_to_dataframe(positions: List[Position]) -> pd.DataFrame:
    """Tabular view of positions for display, numeric columns as floats."""
    rows = [
        {label: getattr(p, field) for field, label in POSITION_COLUMNS.items()}
        for p in positions
    ]
    df = pd.DataFrame(rows, columns=list(POSITION_COLUMNS.values()))
    numeric_cols = [
        label
        for field, label in POSITION_COLUMNS.items()
        if field not in ("ticker", "name", "asset_type")
    ]
    for col in numeric_cols:
        df[col] = pd.to_numeric(df[col].map(float), errors="coerce")
    return df
