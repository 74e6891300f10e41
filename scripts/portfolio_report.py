import argparse
import logging
import os
import sys

# Add src to path so we can import modules
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from airtable_ledger import AirtableLedgerClient
from data_loader import load_and_clean_transactions
from finutils import format_currency_value, format_percentage_value
from market_data import MarketDataProvider
from portfolio_analyzer import (
    calculate_allocation,
    calculate_portfolio_totals,
    compute_positions,
    extract_realized_gains_history,
    positions_to_dataframe,
)
from portfolio_logic import compute_timeline, timeline_to_dataframe
from config import DEFAULT_TIME_WINDOW, LOGGING_LEVEL, TIME_WINDOWS


def main():
    parser = argparse.ArgumentParser(description="Print positions, totals and the value timeline.")
    parser.add_argument("csv", nargs="?", help="Ledger CSV export. Reads Airtable when omitted.")
    parser.add_argument("--window", choices=TIME_WINDOWS, default=DEFAULT_TIME_WINDOW)
    parser.add_argument("--offline", action="store_true", help="Skip quote requests; prices are zero.")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else LOGGING_LEVEL,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.csv:
        transactions, ignored, reasons, has_errors, _ = load_and_clean_transactions(args.csv)
        if has_errors:
            print(f"Could not load {args.csv}.")
            return 1
        for index in sorted(ignored):
            print(f"Skipped row {index}: {reasons[index]}")
    else:
        ledger = AirtableLedgerClient()
        if not ledger.is_configured:
            print("No CSV given and AIRTABLE_API_KEY / AIRTABLE_BASE_ID are not set.")
            return 1
        transactions = ledger.fetch_transactions()

    prices = {} if args.offline else MarketDataProvider().get_prices_for_transactions(transactions)
    positions = compute_positions(transactions, prices)
    totals = calculate_portfolio_totals(positions)

    print("\n--- Positions ---")
    print(positions_to_dataframe(positions).to_string(index=False))

    print("\n--- Totals ---")
    print(f"Value:      {format_currency_value(totals['total_value'])}")
    print(f"Cost basis: {format_currency_value(totals['total_cost_basis'])}")
    print(
        f"P/L:        {format_currency_value(totals['total_pnl'])} "
        f"({format_percentage_value(totals['total_pnl_percent'])})"
    )
    for item in calculate_allocation(positions):
        print(f"  {item['name']:<8} {format_currency_value(item['value'])}")

    gains = extract_realized_gains_history(transactions)
    if not gains.empty:
        print("\n--- Realized Gains ---")
        print(gains.to_string(index=False))

    timeline = compute_timeline(
        transactions, prices, positions, totals["total_value"], window=args.window
    )
    print(f"\n--- Timeline ({args.window}) ---")
    print(timeline_to_dataframe(timeline)[["Date", "Value", "Cost Basis"]].to_string(index=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
