# -*- coding: utf-8 -*-
"""
-------------------------------------------------------------------------------
 Name:          data_loader.py
 Purpose:       Loads ledger rows from CSV exports or raw record dicts and
                turns them into validated Transaction models. Rows that cannot
                be used are skipped and reported, never raised.

 Copyright:     (c) Lotfolio Contributors 2025
 Licence:       MIT
-------------------------------------------------------------------------------
SPDX-License-Identifier: MIT
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Set, Tuple

import pandas as pd
from pydantic import ValidationError

from finutils import is_positive, to_decimal
from models import Transaction

# Internal record keys, matching the ledger's field names.
EXPECTED_CLEANED_COLUMNS = [
    "id",
    "ticker",
    "name",
    "assetType",
    "type",
    "quantity",
    "price",
    "date",
    "time",
]
REQUIRED_COLUMNS = ["ticker", "quantity", "price", "date"]

# Lower-cased CSV header -> internal key.
COLUMN_MAPPING_CSV_TO_INTERNAL: Dict[str, str] = {
    "id": "id",
    "record id": "id",
    "ticker": "ticker",
    "symbol": "ticker",
    "stock / etf symbol": "ticker",
    "name": "name",
    "asset name": "name",
    "assettype": "assetType",
    "asset type": "assetType",
    "asset class": "assetType",
    "type": "type",
    "transaction type": "type",
    "side": "type",
    "quantity": "quantity",
    "shares": "quantity",
    "units": "quantity",
    "quantity of units": "quantity",
    "price": "price",
    "price/share": "price",
    "price per share": "price",
    "amount per unit": "price",
    "date": "date",
    "transaction date": "date",
    "date (mmm dd, yyyy)": "date",
    "time": "time",
}


def _map_headers(df: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, str]]:
    """
    Renames known CSV headers to internal keys and drops everything else.

    Returns:
        Tuple[pd.DataFrame, Dict[str, str]]: The renamed frame and the map of
        original header -> internal key that was applied.
    """
    applied: Dict[str, str] = {}
    for original in df.columns:
        key = COLUMN_MAPPING_CSV_TO_INTERNAL.get(str(original).strip().lower())
        if key and key not in applied.values():
            applied[original] = key
    df_renamed = df.rename(columns=applied)
    keep = [col for col in EXPECTED_CLEANED_COLUMNS if col in df_renamed.columns]
    return df_renamed[keep].copy(), applied


def _parse_date_robustly(date_series: pd.Series) -> pd.Series:
    """Attempts to parse a Series of date strings using multiple common formats."""
    common_formats = [
        "%Y-%m-%d",
        "%m/%d/%Y",
        "%d/%m/%Y",
        "%Y/%m/%d",
        "%b %d, %Y",
        "%B %d, %Y",
        "%d-%b-%Y",
        "%Y%m%d",
    ]
    parsed_dates = pd.to_datetime(date_series, errors="coerce", format="mixed")

    failed_indices = parsed_dates[parsed_dates.isna()].index
    for idx in failed_indices:
        original = date_series.loc[idx]
        if not isinstance(original, str) or not original.strip():
            continue
        cleaned = re.sub(r"(\d+)(st|nd|rd|th)", r"\1", original.strip(), flags=re.IGNORECASE)
        for fmt in common_formats:
            try:
                parsed_dates.loc[idx] = datetime.strptime(cleaned, fmt)
                break
            except ValueError:
                continue
    return parsed_dates


def _validate_record(record: Dict[str, Any]) -> Transaction:
    """
    Builds a Transaction and rejects rows the accounting engine cannot use.

    Raises:
        ValueError: for a non-positive or non-finite quantity, or a negative
            or non-finite price.
        ValidationError: when pydantic rejects the record.
    """
    tx = Transaction.model_validate(record)
    if not tx.quantity.is_finite() or not is_positive(tx.quantity):
        raise ValueError(f"quantity must be a positive number, got {record.get('quantity')!r}")
    price = to_decimal(tx.price)
    if not price.is_finite() or price < 0:
        raise ValueError(f"price must be a non-negative number, got {record.get('price')!r}")
    return tx


def transactions_from_records(
    records: Iterable[Dict[str, Any]],
) -> Tuple[List[Transaction], Set[int], Dict[int, str], bool]:
    """
    Validates raw ledger records (dicts with the ledger's field names).

    Args:
        records: Dicts with id, ticker, name, assetType, type, quantity,
            price, date and optionally time.

    Returns:
        Tuple containing:
        - transactions (List[Transaction]): Valid rows, in input order.
        - ignored_indices (Set[int]): Positions of skipped records.
        - ignored_reasons (Dict[int, str]): Reason per skipped record.
        - has_warnings (bool): True if any record was skipped.
    """
    transactions: List[Transaction] = []
    ignored_indices: Set[int] = set()
    ignored_reasons: Dict[int, str] = {}

    for index, record in enumerate(records):
        record = dict(record)
        if not record.get("id"):
            record["id"] = f"row-{index}"
        try:
            transactions.append(_validate_record(record))
        except (ValidationError, ValueError) as e:
            error_msg = f"Row Read Error ({type(e).__name__}): {e}".replace("\n", " ")
            logging.warning(f"Skipping ledger record {index}: {error_msg[:200]}")
            ignored_indices.add(index)
            ignored_reasons[index] = error_msg

    has_warnings = bool(ignored_indices)
    logging.info(
        f"Data Loader: {len(transactions)} transactions loaded, {len(ignored_indices)} skipped."
    )
    return transactions, ignored_indices, ignored_reasons, has_warnings


def load_and_clean_transactions(
    csv_path: str,
) -> Tuple[List[Transaction], Set[int], Dict[int, str], bool, bool]:
    """
    Loads a ledger CSV export into Transaction models.

    Header names are matched case-insensitively against
    COLUMN_MAPPING_CSV_TO_INTERNAL. Dates in common formats are normalized to
    ISO. Row indices in the result refer to 0-based data rows of the file.

    Args:
        csv_path (str): Path to the CSV file.

    Returns:
        Tuple containing:
        - transactions (List[Transaction]): Valid transactions.
        - ignored_indices (Set[int]): Data rows that were skipped.
        - ignored_reasons (Dict[int, str]): Reason per skipped row.
        - has_errors (bool): True if the file could not be used at all.
        - has_warnings (bool): True if any row was skipped.
    """
    logging.info(f"Data Loader: Starting load from CSV: {csv_path}")
    try:
        raw_df = pd.read_csv(
            csv_path, dtype=str, keep_default_na=False, skipinitialspace=True
        )
    except FileNotFoundError:
        logging.error(f"Data Loader: CSV file not found: {csv_path}")
        return [], set(), {}, True, False
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        logging.error(f"Data Loader: Could not parse CSV {csv_path}: {e}")
        return [], set(), {}, True, False

    df, header_map = _map_headers(raw_df)
    logging.debug(f"Data Loader: header map applied: {header_map}")

    missing_cols = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_cols:
        logging.error(
            f"Data Loader: CSV is missing required columns {missing_cols}. Cannot proceed."
        )
        return [], set(), {}, True, False

    parsed_dates = _parse_date_robustly(df["date"])
    # Keep a time of day found in the date column; the model splits it off.
    df["date"] = [
        raw if pd.isna(ts)
        else ts.strftime("%Y-%m-%dT%H:%M:%S") if ts != ts.normalize()
        else ts.strftime("%Y-%m-%d")
        for ts, raw in zip(parsed_dates, df["date"])
    ]

    records = df.to_dict(orient="records")
    for record in records:
        for key, value in list(record.items()):
            if isinstance(value, str) and not value.strip():
                record[key] = None

    transactions, ignored_indices, ignored_reasons, has_warnings = transactions_from_records(
        records
    )
    return transactions, ignored_indices, ignored_reasons, False, has_warnings
