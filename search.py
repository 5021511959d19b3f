from __future__ import annotations

import sqlite3
from typing import Dict, List

import database as db
from config import compile_pattern


def search_transactions(conn: sqlite3.Connection, query: str, limit: int = 50) -> List[Dict]:
    """Ranked full-text search; any whitespace-separated term may match."""
    if not query or not query.strip():
        return []
    return db.search_fts(conn, query, limit)


def grep_transactions(conn: sqlite3.Connection, pattern: str, **filters) -> List[Dict]:
    """
    Case-insensitive regex over "merchant_name name", after the usual
    get_transactions filters (start_date, end_date, min_amount, ..., limit).
    """
    regex = compile_pattern(pattern)  # fails before touching the ledger
    out = []
    for t in db.get_transactions(conn, **filters):
        haystack = " ".join(s for s in (t.get("merchant_name"), t.get("name")) if s)
        if regex.search(haystack):
            out.append(t)
    return out
