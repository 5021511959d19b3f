"""CSV and JSON export of transactions."""

from __future__ import annotations

import json
from typing import Dict, List

import pandas as pd

from models import transaction_response

CSV_HEADERS = [
    "transaction_id",
    "account_id",
    "date",
    "name",
    "merchant_name",
    "amount",
    "category",
    "subcategory",
    "tag",
    "pending",
    "payment_channel",
]

_NEEDS_QUOTES = (",", '"', "\n", "\r")


def _format_amount(amount) -> str:
    """Whole amounts without a trailing .0 (25, -5000); others as Python prints them."""
    if pd.isna(amount):
        return ""
    amount = float(amount)
    return str(int(amount)) if amount.is_integer() else repr(amount)


def _csv_field(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    s = str(value)
    if any(c in s for c in _NEEDS_QUOTES):
        return '"' + s.replace('"', '""') + '"'
    return s


def transactions_frame(transactions: List[Dict]) -> pd.DataFrame:
    """Ledger rows or TransactionResponse dicts -> DataFrame in export column order."""
    records = []
    for t in transactions:
        r = transaction_response(t)
        r["pending"] = "true" if r["pending"] else "false"
        records.append(r)
    frame = pd.DataFrame.from_records(records, columns=CSV_HEADERS)
    frame["amount"] = frame["amount"].map(_format_amount)
    return frame


def export_csv(transactions: List[Dict]) -> str:
    """
    RFC 4180 quoting (fields with comma, quote, CR or LF are quoted, quotes doubled),
    missing values as empty fields, always newline-terminated, header even when empty.
    """
    # to_csv only quotes the characters of its line terminator; CR must be quoted too
    frame = transactions_frame(transactions)
    lines = [",".join(CSV_HEADERS)]
    lines.extend(",".join(_csv_field(v) for v in row) for row in frame.itertuples(index=False, name=None))
    return "\n".join(lines) + "\n"


def export_json(transactions: List[Dict]) -> str:
    return json.dumps([transaction_response(t) for t in transactions], indent=2) + "\n"
