# -*- coding: utf-8 -*-
"""
-------------------------------------------------------------------------------
 Name:          airtable_ledger.py
 Purpose:       Reads and writes the transaction ledger stored in an Airtable
                table. Reads return validated Transaction models; writes
                raise LedgerError when Airtable rejects them.

 Copyright:     (c) Lotfolio Contributors 2025
 Licence:       MIT
-------------------------------------------------------------------------------
SPDX-License-Identifier: MIT
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from config import (
    AIRTABLE_API_BASE_URL,
    AIRTABLE_API_KEY,
    AIRTABLE_BASE_ID,
    AIRTABLE_FIELD_IDS,
    AIRTABLE_SELECT_FIELD_ERRORS,
    AIRTABLE_TABLE_ID,
    HTTP_TIMEOUT_SECONDS,
)
from data_loader import transactions_from_records
from models import Transaction


class LedgerError(Exception):
    """Raised when a ledger write cannot be completed."""


def _error_message(response: requests.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return default
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("type") or default
    return str(error) if error else default


def _is_select_field_error(message: str) -> bool:
    """True when Airtable refused the asset-class single-select value."""
    if any(fragment in message for fragment in AIRTABLE_SELECT_FIELD_ERRORS):
        return True
    return "Could not parse" in message and "Asset Class" in message


def _record_to_dict(record: Dict[str, Any]) -> Dict[str, Any]:
    """Maps an Airtable record (fields keyed by name) to ledger record keys."""
    fields = record.get("fields") or {}
    return {
        "id": record.get("id"),
        "ticker": fields.get("Ticker") or "",
        "name": fields.get("Name"),
        "assetType": fields.get("Asset Class"),
        "type": fields.get("Type") or "Buy",
        "quantity": fields.get("Quantity", 0),
        "price": fields.get("Price", 0),
        "date": fields.get("Date"),
    }


def _transaction_fields(tx: Transaction) -> Dict[str, Any]:
    """Write payload keyed by field id."""
    date_value = tx.occurred_at.isoformat() if tx.time else tx.date.isoformat()
    return {
        AIRTABLE_FIELD_IDS["TICKER"]: tx.ticker,
        AIRTABLE_FIELD_IDS["NAME"]: tx.name or tx.ticker,
        AIRTABLE_FIELD_IDS["TYPE"]: tx.type,
        AIRTABLE_FIELD_IDS["QUANTITY"]: float(tx.quantity),
        AIRTABLE_FIELD_IDS["PRICE"]: float(tx.price),
        AIRTABLE_FIELD_IDS["TOTAL_COST"]: float(tx.quantity * tx.price),
        AIRTABLE_FIELD_IDS["DATE"]: date_value,
        AIRTABLE_FIELD_IDS["ASSET_CLASS"]: tx.asset_type,
    }


class AirtableLedgerClient:
    """Thin client for the ledger table. Credentials default to the environment."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_id: Optional[str] = None,
        table_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = AIRTABLE_API_KEY if api_key is None else api_key
        self.base_id = AIRTABLE_BASE_ID if base_id is None else base_id
        self.table_id = table_id or AIRTABLE_TABLE_ID
        self._session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_id)

    @property
    def table_url(self) -> str:
        return f"{AIRTABLE_API_BASE_URL}/{self.base_id}/{self.table_id}"

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def fetch_transactions(self) -> List[Transaction]:
        """
        Fetches every ledger record, newest first.

        Follows Airtable's `offset` pagination until the last page. Records
        that do not validate are skipped with a warning.

        Returns:
            List[Transaction]: The ledger, or an empty list when credentials
            are missing or the request fails.
        """
        if not self.is_configured:
            logging.warning("Airtable credentials missing; ledger is empty.")
            return []

        params: Dict[str, str] = {
            "sort[0][field]": AIRTABLE_FIELD_IDS["DATE"],
            "sort[0][direction]": "desc",
        }
        records: List[Dict[str, Any]] = []
        try:
            while True:
                response = self._session.get(
                    self.table_url,
                    params=params,
                    headers=self._headers,
                    timeout=HTTP_TIMEOUT_SECONDS,
                )
                if not response.ok:
                    logging.error(
                        f"Airtable fetch error: HTTP {response.status_code} {response.text[:200]}"
                    )
                    return []
                data = response.json()
                records.extend(data.get("records") or [])
                offset = data.get("offset")
                if not offset:
                    break
                params = {**params, "offset": offset}
        except (requests.RequestException, ValueError) as e:
            logging.error(f"Airtable fetch error: {e}")
            return []

        transactions, _, _, _ = transactions_from_records(_record_to_dict(r) for r in records)
        logging.info(f"Fetched {len(transactions)} ledger transactions from Airtable.")
        return transactions

    def _write(self, method: str, url: str, fields: Dict[str, Any], action: str) -> Dict[str, Any]:
        """Sends a create/update and retries once without the asset class on select errors."""
        if not self.is_configured:
            raise LedgerError(f"Cannot {action} record: Airtable credentials missing.")

        try:
            response = self._session.request(
                method,
                url,
                json={"fields": fields, "typecast": True},
                headers=self._headers,
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            if response.ok:
                return response.json()

            message = _error_message(response, f"failed to {action} record")
            if not _is_select_field_error(message):
                raise LedgerError(message)

            logging.warning(
                f"Airtable rejected the asset class ({message}); retrying without it."
            )
            retry_fields = dict(fields)
            retry_fields.pop(AIRTABLE_FIELD_IDS["ASSET_CLASS"], None)
            retry = self._session.request(
                method,
                url,
                json={"fields": retry_fields, "typecast": True},
                headers=self._headers,
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            if not retry.ok:
                raise LedgerError(_error_message(retry, f"failed to {action} record"))
            return retry.json()
        except (requests.RequestException, ValueError) as e:
            logging.error(f"Airtable {action} error: {e}")
            raise LedgerError(f"Airtable {action} failed: {e}") from e

    def create_transaction(self, tx: Transaction) -> Transaction:
        """Stores a new transaction and returns it with the Airtable record id."""
        data = self._write("POST", self.table_url, _transaction_fields(tx), "create")
        return tx.model_copy(update={"id": data.get("id") or tx.id})

    def update_transaction(self, record_id: str, tx: Transaction) -> Transaction:
        self._write("PATCH", f"{self.table_url}/{record_id}", _transaction_fields(tx), "update")
        return tx.model_copy(update={"id": record_id})

    def delete_transaction(self, record_id: str) -> bool:
        """Deletes one record. Returns False (and logs) instead of raising."""
        if not self.is_configured:
            return False
        try:
            response = self._session.delete(
                f"{self.table_url}/{record_id}",
                headers=self._headers,
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logging.error(f"Airtable delete error for {record_id}: {e}")
            return False
        if not response.ok:
            logging.error(f"Airtable delete error for {record_id}: HTTP {response.status_code}")
            return False
        return True

    def delete_asset(self, ticker: str, transactions: Iterable[Transaction]) -> int:
        """
        Deletes every transaction of a ticker, one request at a time.

        Returns:
            int: Number of records actually deleted.
        """
        ticker = ticker.strip().upper()
        deleted = 0
        for tx in transactions:
            if tx.ticker == ticker and self.delete_transaction(tx.id):
                deleted += 1
        logging.info(f"Deleted {deleted} transaction(s) for {ticker}.")
        return deleted
