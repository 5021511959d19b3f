"""Burn rate, income vs. expenses, and the all-in-one snapshot."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

import database as db
from budget_analyzer import check_alerts, current_month, get_budget_statuses
from errors import ConfigurationError
from models import account_response, transaction_response

TREND_WINDOW = 3
TREND_THRESHOLD = 0.05  # of the average spend over the trend window


def _check_months(months: int) -> int:
    if int(months) <= 0:
        raise ConfigurationError(f"Invalid months {months!r}: must be positive")
    return int(months)


def compute_trend(monthly: List[Dict]) -> str:
    """
    "increasing" / "decreasing" / "stable" from the last three monthly totals:
    the mean month-over-month change compared against 5% of their mean spend.
    """
    if len(monthly) < TREND_WINDOW:
        return "stable"
    recent = [m["total"] for m in monthly[-TREND_WINDOW:]]
    diffs = [b - a for a, b in zip(recent, recent[1:])]
    avg_diff = sum(diffs) / len(diffs)
    threshold = (sum(recent) / len(recent)) * TREND_THRESHOLD
    if avg_diff > threshold:
        return "increasing"
    if avg_diff < -threshold:
        return "decreasing"
    return "stable"


def get_burn_report(conn: sqlite3.Connection, months: int = 6, today: Optional[date] = None) -> Dict:
    rows = db.get_monthly_spending(conn, _check_months(months), today)
    monthly = [{"month": r["month"], "total": round(r["total"], 2)} for r in rows]
    return {"months": monthly, "trend": compute_trend(monthly)}


def get_net_report(conn: sqlite3.Connection, months: int = 6, today: Optional[date] = None) -> Dict:
    rows = db.get_monthly_net(conn, _check_months(months), today)
    return {
        "months": [
            {
                "month": r["month"],
                "income": round(r["income"], 2),
                "expenses": round(r["expenses"], 2),
                "net": round(r["income"] - r["expenses"], 2),
            }
            for r in rows
        ]
    }


def compute_runway(total_balance: float, burn: Dict) -> Optional[float]:
    """Months of spending the balance covers at the average burn; None without usable burn."""
    if not burn["months"]:
        return None
    avg_burn = sum(m["total"] for m in burn["months"]) / len(burn["months"])
    if avg_burn <= 0:
        return None
    return round(total_balance / avg_burn, 1)


def get_snapshot(conn: sqlite3.Connection, today: Optional[date] = None) -> Dict:
    accounts = db.get_accounts(conn)
    total_balance = sum(a["current_balance"] or 0 for a in accounts)
    month = current_month(today)
    burn = get_burn_report(conn, 6, today)

    return {
        "accounts": [account_response(a) for a in accounts],
        "total_balance": round(total_balance, 2),
        "recent_transactions": [transaction_response(t) for t in db.get_transactions(conn, limit=10)],
        "budgets": get_budget_statuses(conn, month),
        "alerts": check_alerts(conn, month),
        "burn": burn,
        "runway_months": compute_runway(total_balance, burn),
        "synced_at": db.get_last_sync_time(conn) or datetime.now(timezone.utc).isoformat(),
    }
