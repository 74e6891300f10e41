# -*- coding: utf-8 -*-
"""
-------------------------------------------------------------------------------
 Name:          portfolio_logic.py
 Purpose:       Historical performance series for the portfolio chart.
                Replays the ledger day by day with the FIFO primitives from
                portfolio_analyzer.py and snapshots market value and cost
                basis after each transaction day.

 Copyright:     (c) Lotfolio Contributors 2025
 Licence:       MIT
-------------------------------------------------------------------------------
SPDX-License-Identifier: MIT
"""

import logging
from decimal import Decimal
from itertools import groupby
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from config import DEFAULT_TIME_WINDOW, TIMELINE_NOW_LABEL
from finutils import ZERO, decimal_sum, is_positive, to_decimal
from models import Position, TimelinePoint, Transaction
from portfolio_analyzer import (
    _apply_transaction,
    _lookup_price,
    _new_holding,
    sort_transactions_for_replay,
)
from utils_time import get_now, get_window_cutoff, to_epoch_ms, to_midnight


def format_timeline_label(day: pd.Timestamp, now: pd.Timestamp) -> str:
    """Chart label for a day: "Jan 5" this year, "Jan 5, 2023" for other years."""
    label = f"{day:%b} {day.day}"
    if day.year != now.year:
        label += f", {day.year}"
    return label


def _snapshot(
    holdings: Dict[str, Dict[str, Any]], prices: Optional[Mapping[str, Any]]
) -> Tuple[Decimal, Decimal]:
    """
    Values the holdings as they stand, using today's quotes for every day.

    Only tickers with a positive quantity count towards value and cost basis.
    """
    value = ZERO
    cost_basis = ZERO
    for ticker, holding in holdings.items():
        if not is_positive(holding["quantity"]):
            continue
        value += holding["quantity"] * _lookup_price(prices, ticker).current_price
        cost_basis += holding["total_cost"]
    return value, cost_basis


def compute_timeline(
    transactions: Iterable[Transaction],
    prices: Optional[Mapping[str, Any]],
    current_positions: Iterable[Position],
    current_total_value: Any,
    window: str = DEFAULT_TIME_WINDOW,
    now: Optional[pd.Timestamp] = None,
) -> List[TimelinePoint]:
    """
    Builds the portfolio value series shown on the performance chart.

    Transactions are grouped by calendar day and replayed in date order (Buy
    before Sell within a day). After each day the series records what the
    holdings at that point would be worth at current prices, which is a
    simplification: no historical quotes are used. A final "Now" point
    carries the caller's current total value and the cost basis of
    `current_positions`.

    Args:
        transactions: The full ledger, any order.
        prices: Ticker -> PricePoint (or dict); missing tickers are worth zero.
        current_positions: Output of compute_positions for the same inputs.
        current_total_value: Sum of the current positions' market values.
        window: One of config.TIME_WINDOWS; points older than the window's
            cutoff are dropped.
        now: Reference time for the "Now" point, labels and the cutoff.

    Returns:
        List[TimelinePoint]: Ascending by timestamp. Empty when there are no
        transactions.

    Raises:
        ValueError: if `window` is not a known time window.
    """
    now = get_now() if now is None else pd.Timestamp(now)
    cutoff = get_window_cutoff(window, now)

    ordered = sort_transactions_for_replay(transactions, "date")
    if not ordered:
        return []

    holdings: Dict[str, Dict[str, Any]] = {}
    points: List[TimelinePoint] = []

    for day, day_transactions in groupby(ordered, key=lambda tx: tx.date):
        for tx in day_transactions:
            _apply_transaction(holdings.setdefault(tx.ticker, _new_holding()), tx)

        value, cost_basis = _snapshot(holdings, prices)
        midnight = to_midnight(day)
        points.append(
            TimelinePoint(
                date=format_timeline_label(midnight, now),
                value=value,
                cost_basis=cost_basis,
                timestamp=to_epoch_ms(midnight),
            )
        )

    # A ledger dated ahead of the clock must not put "Now" before its last day.
    now_timestamp = max(to_epoch_ms(now), points[-1].timestamp)
    points.append(
        TimelinePoint(
            date=TIMELINE_NOW_LABEL,
            value=to_decimal(current_total_value),
            cost_basis=decimal_sum(p.total_cost for p in current_positions),
            timestamp=now_timestamp,
        )
    )
    logging.debug(f"compute_timeline: {len(points)} points before '{window}' filter.")

    if cutoff is not None:
        cutoff_ms = to_epoch_ms(cutoff)
        points = [point for point in points if point.timestamp >= cutoff_ms]

    return points


def timeline_to_dataframe(points: List[TimelinePoint]) -> pd.DataFrame:
    """Chart-ready frame: Date label, Value, Cost Basis and a datetime column."""
    df = pd.DataFrame(
        {
            "Date": [p.date for p in points],
            "Value": [float(p.value) for p in points],
            "Cost Basis": [float(p.cost_basis) for p in points],
            "Timestamp": [p.timestamp for p in points],
        }
    )
    df["Datetime"] = pd.to_datetime(df["Timestamp"], unit="ms")
    return df
