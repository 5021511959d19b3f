# tag_rules.py: regex rules that give transactions a local tag
# -------------------------------------------------------
# Rules are tried highest priority first (ties: oldest rule first) against
# "merchant_name name"; the first match wins. A transaction is tagged at most
# once by rules: rows that already carry a tag are never looked at again, even
# when a better rule shows up later. Manual edits go through set_tag().

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List, Optional

import database as db
from config import compile_pattern

logger = logging.getLogger(__name__)


def add_tag_rule(conn: sqlite3.Connection, pattern: str, tag: str, priority: int = 0) -> int:
    return db.insert_tag_rule(conn, pattern, tag, priority)


def get_tag_rules(conn: sqlite3.Connection) -> List[Dict]:
    return db.get_tag_rules(conn)


def delete_tag_rule(conn: sqlite3.Connection, rule_id: int) -> bool:
    return db.delete_tag_rule(conn, rule_id)


def _haystack(txn: Dict) -> str:
    return " ".join(s for s in (txn.get("merchant_name"), txn.get("name")) if s)


def apply_tag_rules(conn: sqlite3.Connection) -> int:
    """Tag every untagged transaction that some rule matches. Returns how many were tagged."""
    rules = db.get_tag_rules(conn)
    if not rules:
        return 0
    untagged = db.get_untagged_transactions(conn)
    if not untagged:
        return 0

    compiled = [(compile_pattern(r["pattern"]), r["tag"]) for r in rules]

    tagged = 0
    with db.atomic(conn):
        for txn in untagged:
            haystack = _haystack(txn)
            for regex, tag in compiled:
                if regex.search(haystack):
                    db.update_transaction_tag(conn, txn["transaction_id"], tag)
                    tagged += 1
                    break
    logger.info("Tag rules: %d of %d untagged transactions tagged", tagged, len(untagged))
    return tagged


def set_tag(conn: sqlite3.Connection, transaction_id: str, tag: Optional[str]) -> bool:
    """Manual override; unlike the rule pass this replaces an existing tag."""
    return db.update_transaction_tag(conn, transaction_id, tag)


def get_spending_by_tag(
    conn: sqlite3.Connection,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[Dict]:
    rows = db.get_spending_by_tag(conn, start_date, end_date)
    return [{"tag": r["tag"], "count": r["count"], "total": round(r["total"], 2)} for r in rows]


def get_split(
    conn: sqlite3.Connection,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict:
    """SplitResponse: spend per resolved tag plus the overall total."""
    categories = get_spending_by_tag(conn, start_date, end_date)
    return {"categories": categories, "total": round(sum(c["total"] for c in categories), 2)}
