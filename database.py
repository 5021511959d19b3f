# database.py: the local ledger (cashflow.db)
# -------------------------------------------------------
# One SQLite file holds everything synced from Plaid plus what we add locally.
# - accounts.account_id / transactions.transaction_id: Plaid ids, upsert keys
# - transactions.tag: ours; a sync never overwrites it
# - transactions_fts: FTS5 shadow index, maintained by triggers in the same
#   transaction as the row change
#
# This module exposes:
#   Connection & schema:
#     - get_db_connection(path), open_ledger(path), initialize_database(conn), atomic(conn)
#   Accounts:
#     - upsert_accounts, get_accounts, get_account_by_id_or_mask, remove_accounts_by_item
#   Transactions:
#     - upsert_transactions, remove_transactions, remove_transactions_by_account,
#       get_transactions, get_transaction, get_untagged_transactions, update_transaction_tag
#   Sync state:
#     - get_sync_state, set_sync_state, remove_sync_state, get_last_sync_time
#   Tag rules & budgets:
#     - insert_tag_rule, get_tag_rules, delete_tag_rule
#     - upsert_budget, get_budgets, delete_budget
#   Search & aggregates:
#     - search_fts, get_spending_by_tag, get_spending_by_tag_for_month,
#       get_monthly_spending, get_monthly_net, get_average_monthly_spend_by_tag
#   Unlink:
#     - unlink_item(conn, item_id)
#
# Notes:
#   - Every function takes the connection explicitly; nothing here holds a global handle.
#   - Connections run in autocommit mode; multi-row writes go through atomic().

from __future__ import annotations

import itertools
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Dict, Iterator, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from config import compile_pattern, validate_date, validate_month
from errors import ConfigurationError

logger = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"

# COALESCE on NULLIF so blank strings resolve like NULLs
RESOLVED_TAG_SQL = f"COALESCE(NULLIF(tag, ''), NULLIF(category, ''), '{UNCATEGORIZED}')"


# -------------------------------------------------------------------
# Connection
# -------------------------------------------------------------------

def get_db_connection(path) -> sqlite3.Connection:
    path = str(path)
    if path != ":memory:":
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)
    conn = sqlite3.connect(path, timeout=30.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


@contextmanager
def open_ledger(path) -> Iterator[sqlite3.Connection]:
    """Open, migrate, hand out, and always close a ledger connection."""
    conn = get_db_connection(path)
    try:
        initialize_database(conn)
        yield conn
    finally:
        conn.close()


_savepoints = itertools.count(1)


@contextmanager
def atomic(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    All-or-nothing unit of work. The outermost call owns BEGIN/COMMIT;
    nested calls become savepoints so helpers compose inside a bigger write.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoints)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        conn.execute(f"RELEASE SAVEPOINT {name}")
        return

    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


# -------------------------------------------------------------------
# Schema / migrations
# -------------------------------------------------------------------

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL,
    name TEXT NOT NULL,
    official_name TEXT,
    type TEXT NOT NULL,
    subtype TEXT,
    mask TEXT,
    current_balance REAL,
    available_balance REAL,
    iso_currency_code TEXT,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS transactions (
    transaction_id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL REFERENCES accounts(account_id),
    amount REAL NOT NULL,                  -- positive = money out, negative = money in
    iso_currency_code TEXT,
    date TEXT NOT NULL,
    name TEXT NOT NULL,
    merchant_name TEXT,
    pending INTEGER NOT NULL DEFAULT 0,
    category TEXT,
    subcategory TEXT,
    payment_channel TEXT,
    transaction_type TEXT,
    authorized_date TEXT
);

CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_account ON transactions(account_id);
CREATE INDEX IF NOT EXISTS idx_transactions_amount ON transactions(amount);

CREATE TABLE IF NOT EXISTS sync_state (
    item_id TEXT PRIMARY KEY,
    cursor TEXT NOT NULL DEFAULT '',
    last_synced_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS tag_rules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pattern TEXT NOT NULL,
    tag TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS budgets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tag TEXT NOT NULL,
    monthly_limit REAL NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE VIRTUAL TABLE IF NOT EXISTS transactions_fts USING fts5(
    transaction_id UNINDEXED,
    name,
    merchant_name,
    category,
    content=transactions,
    content_rowid=rowid
);

CREATE TRIGGER IF NOT EXISTS transactions_ai AFTER INSERT ON transactions BEGIN
    INSERT INTO transactions_fts(rowid, transaction_id, name, merchant_name, category)
    VALUES (new.rowid, new.transaction_id, new.name, new.merchant_name, new.category);
END;

CREATE TRIGGER IF NOT EXISTS transactions_ad AFTER DELETE ON transactions BEGIN
    INSERT INTO transactions_fts(transactions_fts, rowid, transaction_id, name, merchant_name, category)
    VALUES ('delete', old.rowid, old.transaction_id, old.name, old.merchant_name, old.category);
END;

CREATE TRIGGER IF NOT EXISTS transactions_au AFTER UPDATE ON transactions BEGIN
    INSERT INTO transactions_fts(transactions_fts, rowid, transaction_id, name, merchant_name, category)
    VALUES ('delete', old.rowid, old.transaction_id, old.name, old.merchant_name, old.category);
    INSERT INTO transactions_fts(rowid, transaction_id, name, merchant_name, category)
    VALUES (new.rowid, new.transaction_id, new.name, new.merchant_name, new.category);
END;
"""

# v2: local tags (indexed for search), rule priority, budget alert threshold
_FTS_V2 = """
DROP TRIGGER IF EXISTS transactions_ai;
DROP TRIGGER IF EXISTS transactions_ad;
DROP TRIGGER IF EXISTS transactions_au;
DROP TABLE IF EXISTS transactions_fts;

CREATE VIRTUAL TABLE transactions_fts USING fts5(
    transaction_id UNINDEXED,
    name,
    merchant_name,
    category,
    tag,
    content=transactions,
    content_rowid=rowid
);

CREATE TRIGGER transactions_ai AFTER INSERT ON transactions BEGIN
    INSERT INTO transactions_fts(rowid, transaction_id, name, merchant_name, category, tag)
    VALUES (new.rowid, new.transaction_id, new.name, new.merchant_name, new.category, new.tag);
END;

CREATE TRIGGER transactions_ad AFTER DELETE ON transactions BEGIN
    INSERT INTO transactions_fts(transactions_fts, rowid, transaction_id, name, merchant_name, category, tag)
    VALUES ('delete', old.rowid, old.transaction_id, old.name, old.merchant_name, old.category, old.tag);
END;

CREATE TRIGGER transactions_au AFTER UPDATE ON transactions BEGIN
    INSERT INTO transactions_fts(transactions_fts, rowid, transaction_id, name, merchant_name, category, tag)
    VALUES ('delete', old.rowid, old.transaction_id, old.name, old.merchant_name, old.category, old.tag);
    INSERT INTO transactions_fts(rowid, transaction_id, name, merchant_name, category, tag)
    VALUES (new.rowid, new.transaction_id, new.name, new.merchant_name, new.category, new.tag);
END;

INSERT INTO transactions_fts(transactions_fts) VALUES ('rebuild');

CREATE INDEX IF NOT EXISTS idx_transactions_tag ON transactions(tag);
CREATE INDEX IF NOT EXISTS idx_tag_rules_priority ON tag_rules(priority DESC, id);
"""


def _has_col(conn: sqlite3.Connection, table: str, col: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r["name"] == col for r in rows)


def _migration_v1(conn: sqlite3.Connection) -> str:
    return _SCHEMA_V1


def _migration_v2(conn: sqlite3.Connection) -> str:
    needed = [
        ("transactions", "tag", "ALTER TABLE transactions ADD COLUMN tag TEXT;"),
        ("tag_rules", "priority", "ALTER TABLE tag_rules ADD COLUMN priority INTEGER NOT NULL DEFAULT 0;"),
        ("budgets", "alert_threshold", "ALTER TABLE budgets ADD COLUMN alert_threshold REAL NOT NULL DEFAULT 0.9;"),
    ]
    ddl = [stmt for table, col, stmt in needed if not _has_col(conn, table, col)]
    # One budget per tag from here on: keep the newest row of any duplicates
    ddl.append(
        "DELETE FROM budgets WHERE id NOT IN (SELECT MAX(id) FROM budgets GROUP BY tag);"
    )
    ddl.append("CREATE UNIQUE INDEX IF NOT EXISTS ux_budgets_tag ON budgets(tag);")
    return "\n".join(ddl) + "\n" + _FTS_V2


MIGRATIONS: List[Tuple[int, object]] = [
    (1, _migration_v1),
    (2, _migration_v2),
]

SCHEMA_VERSION = MIGRATIONS[-1][0]


def get_schema_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def initialize_database(conn: sqlite3.Connection) -> int:
    """
    Bring the schema up to SCHEMA_VERSION. PRAGMA user_version records the last
    migration applied; each pending migration runs in its own transaction
    together with the version bump, so a failure leaves the previous version intact.
    Returns the number of migrations applied.
    """
    current = get_schema_version(conn)
    applied = 0
    for version, build in MIGRATIONS:
        if version <= current:
            continue
        script = build(conn)
        try:
            conn.executescript(f"BEGIN;\n{script}\nPRAGMA user_version = {version};\nCOMMIT;")
        except sqlite3.Error:
            if conn.in_transaction:
                conn.rollback()
            raise
        logger.info("Applied ledger migration v%d", version)
        applied += 1
    return applied


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _rows(cur) -> List[Dict]:
    return [dict(r) for r in cur.fetchall()]


def window_start(months: int, today: Optional[date] = None) -> str:
    """First day of a window of `months` calendar months ending with the current one."""
    today = today or date.today()
    return (today.replace(day=1) - relativedelta(months=months - 1)).strftime("%Y-%m-%d")


def month_bounds(ym: str) -> Tuple[str, str]:
    start = f"{validate_month(ym)}-01"
    dt = datetime.strptime(start, "%Y-%m-%d").date()
    end = ((dt.replace(day=28) + timedelta(days=4)).replace(day=1) - timedelta(days=1)).strftime("%Y-%m-%d")
    return start, end


def _placeholders(n: int) -> str:
    return ",".join("?" for _ in range(n))


# -------------------------------------------------------------------
# Accounts
# -------------------------------------------------------------------

_UPSERT_ACCOUNT_SQL = """
INSERT INTO accounts (account_id, item_id, name, official_name, type, subtype, mask,
                      current_balance, available_balance, iso_currency_code, updated_at)
VALUES (:account_id, :item_id, :name, :official_name, :type, :subtype, :mask,
        :current_balance, :available_balance, :iso_currency_code, datetime('now'))
ON CONFLICT(account_id) DO UPDATE SET
    item_id = excluded.item_id,
    name = excluded.name,
    official_name = excluded.official_name,
    type = excluded.type,
    subtype = excluded.subtype,
    mask = excluded.mask,
    current_balance = excluded.current_balance,
    available_balance = excluded.available_balance,
    iso_currency_code = excluded.iso_currency_code,
    updated_at = excluded.updated_at
"""

_ACCOUNT_KEYS = ("account_id", "item_id", "name", "official_name", "type", "subtype", "mask",
                 "current_balance", "available_balance", "iso_currency_code")


def upsert_accounts(conn: sqlite3.Connection, accounts: List[Dict]) -> int:
    if not accounts:
        return 0
    params = [{k: a.get(k) for k in _ACCOUNT_KEYS} for a in accounts]
    with atomic(conn):
        conn.executemany(_UPSERT_ACCOUNT_SQL, params)
    return len(params)


def get_accounts(conn: sqlite3.Connection) -> List[Dict]:
    return _rows(conn.execute("SELECT * FROM accounts ORDER BY name"))


def get_account_by_id_or_mask(conn: sqlite3.Connection, identifier: str) -> Optional[Dict]:
    row = conn.execute(
        "SELECT * FROM accounts WHERE account_id = ? OR mask = ? "
        "ORDER BY (account_id = ?) DESC, name LIMIT 1",
        (identifier, identifier, identifier),
    ).fetchone()
    return dict(row) if row else None


def remove_accounts_by_item(conn: sqlite3.Connection, item_id: str) -> List[str]:
    """Delete every account of an item. Its transactions must already be gone (FK)."""
    with atomic(conn):
        ids = [r["account_id"] for r in conn.execute(
            "SELECT account_id FROM accounts WHERE item_id = ?", (item_id,))]
        conn.execute("DELETE FROM accounts WHERE item_id = ?", (item_id,))
    return ids


# -------------------------------------------------------------------
# Transactions
# -------------------------------------------------------------------

_UPSERT_TXN_SQL = """
INSERT INTO transactions (transaction_id, account_id, amount, iso_currency_code, date, name,
                          merchant_name, pending, category, subcategory, payment_channel,
                          transaction_type, authorized_date)
VALUES (:transaction_id, :account_id, :amount, :iso_currency_code, :date, :name,
        :merchant_name, :pending, :category, :subcategory, :payment_channel,
        :transaction_type, :authorized_date)
ON CONFLICT(transaction_id) DO UPDATE SET
    account_id = excluded.account_id,
    amount = excluded.amount,
    iso_currency_code = excluded.iso_currency_code,
    date = excluded.date,
    name = excluded.name,
    merchant_name = excluded.merchant_name,
    pending = excluded.pending,
    category = excluded.category,
    subcategory = excluded.subcategory,
    payment_channel = excluded.payment_channel,
    transaction_type = excluded.transaction_type,
    authorized_date = excluded.authorized_date
"""

_TXN_KEYS = ("transaction_id", "account_id", "amount", "iso_currency_code", "date", "name",
             "merchant_name", "category", "subcategory", "payment_channel",
             "transaction_type", "authorized_date")


def _txn_params(t: Dict) -> Dict:
    p = {k: t.get(k) for k in _TXN_KEYS}
    p["pending"] = 1 if t.get("pending") else 0
    return p


def upsert_transactions(conn: sqlite3.Connection, transactions: List[Dict]) -> int:
    """Insert-or-update by transaction_id, all rows or none. `tag` is never touched."""
    if not transactions:
        return 0
    params = [_txn_params(t) for t in transactions]
    with atomic(conn):
        conn.executemany(_UPSERT_TXN_SQL, params)
    return len(params)


def remove_transactions(conn: sqlite3.Connection, transaction_ids: List[str]) -> int:
    if not transaction_ids:
        return 0
    with atomic(conn):
        cur = conn.executemany(
            "DELETE FROM transactions WHERE transaction_id = ?",
            [(tid,) for tid in transaction_ids],
        )
    return cur.rowcount


def remove_transactions_by_account(conn: sqlite3.Connection, account_ids: List[str]) -> int:
    if not account_ids:
        return 0
    with atomic(conn):
        cur = conn.execute(
            f"DELETE FROM transactions WHERE account_id IN ({_placeholders(len(account_ids))})",
            list(account_ids),
        )
    return cur.rowcount


def get_transactions(
    conn: sqlite3.Connection,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    account_id: Optional[str] = None,
    pending: Optional[bool] = None,
    tag: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Dict]:
    """Newest first. Date and amount bounds are inclusive; `tag` falls back to category."""
    q = "SELECT * FROM transactions WHERE 1=1"
    args: List = []
    if start_date:
        q += " AND date >= ?"
        args.append(validate_date(start_date, "start date"))
    if end_date:
        q += " AND date <= ?"
        args.append(validate_date(end_date, "end date"))
    if min_amount is not None:
        q += " AND amount >= ?"
        args.append(float(min_amount))
    if max_amount is not None:
        q += " AND amount <= ?"
        args.append(float(max_amount))
    if account_id:
        q += " AND account_id = ?"
        args.append(account_id)
    if pending is not None:
        q += " AND pending = ?"
        args.append(1 if pending else 0)
    if tag:
        q += " AND COALESCE(NULLIF(tag, ''), category) = ?"
        args.append(tag)
    q += " ORDER BY date DESC, rowid DESC"
    if limit:
        if int(limit) < 0:
            raise ConfigurationError(f"Invalid limit {limit!r}: must be a positive integer")
        q += " LIMIT ?"
        args.append(int(limit))
    return _rows(conn.execute(q, args))


def get_transaction(conn: sqlite3.Connection, transaction_id: str) -> Optional[Dict]:
    row = conn.execute("SELECT * FROM transactions WHERE transaction_id = ?", (transaction_id,)).fetchone()
    return dict(row) if row else None


def get_untagged_transactions(conn: sqlite3.Connection) -> List[Dict]:
    return _rows(conn.execute("SELECT * FROM transactions WHERE tag IS NULL ORDER BY date DESC, rowid DESC"))


def update_transaction_tag(conn: sqlite3.Connection, transaction_id: str, tag: Optional[str]) -> bool:
    """Set (or clear, with None) the local tag. Manual edits may overwrite an existing tag."""
    cur = conn.execute("UPDATE transactions SET tag = ? WHERE transaction_id = ?", (tag, transaction_id))
    return cur.rowcount == 1


# -------------------------------------------------------------------
# Sync state
# -------------------------------------------------------------------

def get_sync_state(conn: sqlite3.Connection, item_id: str) -> Optional[Dict]:
    row = conn.execute("SELECT * FROM sync_state WHERE item_id = ?", (item_id,)).fetchone()
    return dict(row) if row else None


def set_sync_state(conn: sqlite3.Connection, item_id: str, cursor: str) -> None:
    conn.execute(
        "INSERT INTO sync_state (item_id, cursor, last_synced_at) VALUES (?, ?, datetime('now')) "
        "ON CONFLICT(item_id) DO UPDATE SET cursor = excluded.cursor, last_synced_at = excluded.last_synced_at",
        (item_id, cursor or ""),
    )


def remove_sync_state(conn: sqlite3.Connection, item_id: str) -> bool:
    cur = conn.execute("DELETE FROM sync_state WHERE item_id = ?", (item_id,))
    return cur.rowcount == 1


def get_last_sync_time(conn: sqlite3.Connection) -> Optional[str]:
    return conn.execute("SELECT MAX(last_synced_at) FROM sync_state").fetchone()[0]


# -------------------------------------------------------------------
# Tag rules
# -------------------------------------------------------------------

def insert_tag_rule(conn: sqlite3.Connection, pattern: str, tag: str, priority: int = 0) -> int:
    compile_pattern(pattern)  # raises ConfigurationError before anything is written
    if not (tag or "").strip():
        raise ConfigurationError("Tag must not be empty")
    cur = conn.execute(
        "INSERT INTO tag_rules (pattern, tag, priority) VALUES (?, ?, ?)",
        (pattern, tag.strip(), int(priority)),
    )
    return int(cur.lastrowid)


def get_tag_rules(conn: sqlite3.Connection) -> List[Dict]:
    """Highest priority first; equal priorities in creation order."""
    return _rows(conn.execute("SELECT * FROM tag_rules ORDER BY priority DESC, id ASC"))


def delete_tag_rule(conn: sqlite3.Connection, rule_id: int) -> bool:
    cur = conn.execute("DELETE FROM tag_rules WHERE id = ?", (int(rule_id),))
    return cur.rowcount == 1


# -------------------------------------------------------------------
# Budgets
# -------------------------------------------------------------------

def upsert_budget(conn: sqlite3.Connection, tag: str, monthly_limit: float, alert_threshold: float = 0.9) -> None:
    conn.execute(
        "INSERT INTO budgets (tag, monthly_limit, alert_threshold) VALUES (?, ?, ?) "
        "ON CONFLICT(tag) DO UPDATE SET monthly_limit = excluded.monthly_limit, "
        "alert_threshold = excluded.alert_threshold",
        (tag, float(monthly_limit), float(alert_threshold)),
    )


def get_budgets(conn: sqlite3.Connection) -> List[Dict]:
    return _rows(conn.execute("SELECT id, tag, monthly_limit, alert_threshold FROM budgets ORDER BY tag"))


def delete_budget(conn: sqlite3.Connection, tag: str) -> bool:
    cur = conn.execute("DELETE FROM budgets WHERE tag = ?", (tag,))
    return cur.rowcount == 1


# -------------------------------------------------------------------
# Full-text search
# -------------------------------------------------------------------

def _fts_query(query: str) -> str:
    # Each term becomes a quoted phrase so FTS5 operators in user input are inert
    terms = ['"' + t.replace('"', '""') + '"' for t in query.split()]
    return " OR ".join(terms)


def search_fts(conn: sqlite3.Connection, query: str, limit: int = 50) -> List[Dict]:
    """BM25-ranked match on name, merchant, category and tag; any term may match."""
    match = _fts_query(query)
    if not match:
        return []
    return _rows(conn.execute(
        """
        SELECT t.*
        FROM transactions_fts
        JOIN transactions t ON t.rowid = transactions_fts.rowid
        WHERE transactions_fts MATCH ?
        ORDER BY bm25(transactions_fts)
        LIMIT ?
        """,
        (match, int(limit)),
    ))


# -------------------------------------------------------------------
# Aggregates (spend = amount > 0)
# -------------------------------------------------------------------

def get_spending_by_tag(
    conn: sqlite3.Connection,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[Dict]:
    q = (
        f"SELECT {RESOLVED_TAG_SQL} AS tag, COUNT(*) AS count, SUM(amount) AS total "
        "FROM transactions WHERE amount > 0"
    )
    args: List = []
    if start_date:
        q += " AND date >= ?"
        args.append(validate_date(start_date, "start date"))
    if end_date:
        q += " AND date <= ?"
        args.append(validate_date(end_date, "end date"))
    q += " GROUP BY 1 ORDER BY total DESC"
    return _rows(conn.execute(q, args))


def get_spending_by_tag_for_month(conn: sqlite3.Connection, month: str) -> List[Dict]:
    start, end = month_bounds(month)
    return get_spending_by_tag(conn, start, end)


def get_monthly_spending(conn: sqlite3.Connection, months: int = 6, today: Optional[date] = None) -> List[Dict]:
    return _rows(conn.execute(
        "SELECT substr(date, 1, 7) AS month, SUM(amount) AS total "
        "FROM transactions WHERE amount > 0 AND date >= ? "
        "GROUP BY month ORDER BY month ASC",
        (window_start(months, today),),
    ))


def get_monthly_net(conn: sqlite3.Connection, months: int = 6, today: Optional[date] = None) -> List[Dict]:
    return _rows(conn.execute(
        """
        SELECT substr(date, 1, 7) AS month,
               SUM(CASE WHEN amount < 0 THEN -amount ELSE 0 END) AS income,
               SUM(CASE WHEN amount > 0 THEN amount ELSE 0 END) AS expenses
        FROM transactions
        WHERE date >= ?
        GROUP BY month
        ORDER BY month ASC
        """,
        (window_start(months, today),),
    ))


def get_average_monthly_spend_by_tag(
    conn: sqlite3.Connection, months: int = 3, today: Optional[date] = None
) -> Dict[str, float]:
    """
    Average monthly spend per resolved tag across the last `months` full months
    (the current, partial month is excluded). Months with no spend count as zero.
    """
    today = today or date.today()
    start = window_start(months + 1, today)
    end = (today.replace(day=1) - timedelta(days=1)).strftime("%Y-%m-%d")
    rows = conn.execute(
        f"SELECT {RESOLVED_TAG_SQL} AS tag, SUM(amount) AS total "
        "FROM transactions WHERE amount > 0 AND date BETWEEN ? AND ? GROUP BY 1",
        (start, end),
    ).fetchall()
    return {r["tag"]: float(r["total"] or 0.0) / months for r in rows}


# -------------------------------------------------------------------
# Unlink
# -------------------------------------------------------------------

def unlink_item(conn: sqlite3.Connection, item_id: str) -> Dict:
    """
    Remove everything an item brought in. Order matters because of the
    accounts <- transactions foreign key: transactions, then accounts, then cursor.
    """
    with atomic(conn):
        account_ids = [r["account_id"] for r in conn.execute(
            "SELECT account_id FROM accounts WHERE item_id = ?", (item_id,))]
        txn_count = remove_transactions_by_account(conn, account_ids)
        remove_accounts_by_item(conn, item_id)
        remove_sync_state(conn, item_id)
    logger.info("Unlinked item %s: %d accounts, %d transactions", item_id, len(account_ids), txn_count)
    return {"item_id": item_id, "accounts": len(account_ids), "transactions": txn_count}
