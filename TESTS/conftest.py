# TESTS/conftest.py
import os
import sys
from datetime import date

import pytest
from dateutil.relativedelta import relativedelta

# --- Make project importable ---
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


CHECKING = {
    "account_id": "acc_1",
    "item_id": "item_1",
    "name": "Checking",
    "official_name": "Premium Checking",
    "type": "depository",
    "subtype": "checking",
    "mask": "1234",
    "current_balance": 5000,
    "available_balance": 4500,
    "iso_currency_code": "USD",
}

SAVINGS = {
    "account_id": "acc_2",
    "item_id": "item_1",
    "name": "Savings",
    "official_name": None,
    "type": "depository",
    "subtype": "savings",
    "mask": "5678",
    "current_balance": 1000,
    "available_balance": 1000,
    "iso_currency_code": "USD",
}


def make_txn(transaction_id, amount, date="2024-06-15", name=None, **kw):
    t = {
        "transaction_id": transaction_id,
        "account_id": "acc_1",
        "amount": amount,
        "iso_currency_code": "USD",
        "date": date,
        "authorized_date": None,
        "name": name or transaction_id,
        "merchant_name": None,
        "pending": 0,
        "category": None,
        "subcategory": None,
        "payment_channel": "online",
        "transaction_type": "place",
    }
    t.update(kw)
    return t


def seed(conn, transactions):
    """Upsert as a sync would, then set any `tag` the rows carry (upserts never write tags)."""
    import database as db
    db.upsert_transactions(conn, transactions)
    for t in transactions:
        if t.get("tag"):
            db.update_transaction_tag(conn, t["transaction_id"], t["tag"])


def months_ago(n, day=15, today=None):
    d = (today or date.today()).replace(day=1) - relativedelta(months=n)
    return d.replace(day=day).strftime("%Y-%m-%d")


@pytest.fixture
def conn(tmp_path):
    import database as db
    c = db.get_db_connection(tmp_path / "test_cashflow.db")
    db.initialize_database(c)
    yield c
    c.close()


@pytest.fixture
def ledger(conn):
    """A ledger with two accounts of one item and nothing else."""
    import database as db
    db.upsert_accounts(conn, [CHECKING, SAVINGS])
    return conn


@pytest.fixture
def cfg_env(tmp_path, monkeypatch):
    """Isolated config file and a fixed encryption key."""
    monkeypatch.setenv("CASHFLOW_CONFIG_PATH", str(tmp_path / "config.json"))
    monkeypatch.setenv("APP_SECRET", "test-secret")
    monkeypatch.delenv("FERNET_KEY", raising=False)
    return tmp_path / "config.json"
