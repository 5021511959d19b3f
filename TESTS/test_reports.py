# TESTS/test_reports.py
from datetime import date

import pytest

import budget_analyzer as ba
import database as db
import reports
from conftest import make_txn, months_ago
from errors import ConfigurationError

TODAY = date(2024, 7, 10)


def _spend(conn, totals):
    """totals[i] is spent i+1 months before TODAY's month, oldest last."""
    db.upsert_transactions(conn, [
        make_txn(f"s{n}", amount, date=months_ago(n, today=TODAY))
        for n, amount in enumerate(totals, start=1)
    ])


def test_burn_trend_increasing(ledger):
    _spend(ledger, [400.0, 200.0, 100.0])
    burn = reports.get_burn_report(ledger, 6, TODAY)
    assert [m["total"] for m in burn["months"]] == [100.0, 200.0, 400.0]
    assert [m["month"] for m in burn["months"]] == ["2024-04", "2024-05", "2024-06"]
    assert burn["trend"] == "increasing"


def test_burn_trend_decreasing(ledger):
    _spend(ledger, [100.0, 200.0, 400.0])
    assert reports.get_burn_report(ledger, 6, TODAY)["trend"] == "decreasing"


def test_burn_trend_stable_within_threshold(ledger):
    _spend(ledger, [1010.0, 1000.0, 1000.0])
    assert reports.get_burn_report(ledger, 6, TODAY)["trend"] == "stable"


def test_burn_trend_needs_three_months(ledger):
    _spend(ledger, [900.0, 100.0])
    assert reports.get_burn_report(ledger, 6, TODAY)["trend"] == "stable"


def test_burn_excludes_income_and_older_months(ledger):
    db.upsert_transactions(ledger, [
        make_txn("spend", 300.0, date=months_ago(1, today=TODAY)),
        make_txn("salary", -5000.0, date=months_ago(1, today=TODAY)),
        make_txn("ancient", 999.0, date=months_ago(8, today=TODAY)),
    ])
    burn = reports.get_burn_report(ledger, 6, TODAY)
    assert burn["months"] == [{"month": "2024-06", "total": 300.0}]


def test_net_report(ledger):
    db.upsert_transactions(ledger, [
        make_txn("salary", -5000.0, date=months_ago(1, today=TODAY)),
        make_txn("rent", 2000.0, date=months_ago(1, today=TODAY)),
        make_txn("food", 500.0, date=months_ago(1, today=TODAY)),
    ])
    net = reports.get_net_report(ledger, 6, TODAY)
    assert net["months"] == [{"month": "2024-06", "income": 5000.0, "expenses": 2500.0, "net": 2500.0}]


def test_reports_reject_non_positive_months(conn):
    with pytest.raises(ConfigurationError):
        reports.get_burn_report(conn, 0, TODAY)
    with pytest.raises(ConfigurationError):
        reports.get_net_report(conn, -3, TODAY)


def test_runway():
    burn = {"months": [{"month": "2024-05", "total": 900.0}, {"month": "2024-06", "total": 1100.0}]}
    assert reports.compute_runway(6000.0, burn) == 6.0
    assert reports.compute_runway(6000.0, {"months": []}) is None
    assert reports.compute_runway(6000.0, {"months": [{"month": "2024-06", "total": 0.0}]}) is None


def test_snapshot(ledger):
    _spend(ledger, [1000.0, 1000.0, 1000.0])
    db.upsert_transactions(ledger, [make_txn(f"r{i}", 1.0, date="2024-07-0%d" % (i % 9 + 1)) for i in range(12)])
    ba.set_budget(ledger, "uncategorized", 10)

    snap = reports.get_snapshot(ledger, TODAY)

    assert snap["total_balance"] == 6000.0
    assert [a["account_id"] for a in snap["accounts"]] == ["acc_1", "acc_2"]
    assert len(snap["recent_transactions"]) == 10
    assert snap["recent_transactions"][0]["date"] >= snap["recent_transactions"][-1]["date"]
    assert [b["tag"] for b in snap["budgets"]] == ["uncategorized"]
    assert snap["budgets"][0]["spent"] == 12.0
    assert [a["tag"] for a in snap["alerts"]] == ["uncategorized"]
    assert snap["burn"]["months"][-1] == {"month": "2024-07", "total": 12.0}
    # (1000 * 3 + 12) / 4 months
    assert snap["runway_months"] == round(6000.0 / 753.0, 1)
    assert snap["synced_at"]


def test_snapshot_runway_and_sync_time(ledger):
    _spend(ledger, [1000.0, 1000.0, 1000.0])
    db.set_sync_state(ledger, "item_1", "c1")

    snap = reports.get_snapshot(ledger, TODAY)

    assert snap["runway_months"] == 6.0
    assert snap["synced_at"] == db.get_last_sync_time(ledger)


def test_snapshot_of_empty_ledger(conn):
    snap = reports.get_snapshot(conn, TODAY)
    assert snap["accounts"] == []
    assert snap["total_balance"] == 0
    assert snap["runway_months"] is None
    assert snap["burn"] == {"months": [], "trend": "stable"}


def test_window_holds_exactly_n_calendar_months(ledger):
    db.upsert_transactions(ledger, [
        make_txn(f"m{n}", 100.0 + n, date=months_ago(n, today=TODAY)) for n in range(0, 5)
    ])

    assert [m["month"] for m in reports.get_burn_report(ledger, 1, TODAY)["months"]] == ["2024-07"]
    burn = reports.get_burn_report(ledger, 3, TODAY)
    assert [m["month"] for m in burn["months"]] == ["2024-05", "2024-06", "2024-07"]
    net = reports.get_net_report(ledger, 3, TODAY)
    assert len(net["months"]) == 3
