# budget_analyzer.py
from __future__ import annotations

import math
import sqlite3
from datetime import date
from typing import Dict, List, Optional

import database as db
from config import validate_month
from errors import ConfigurationError


def current_month(today: Optional[date] = None) -> str:
    return (today or date.today()).strftime("%Y-%m")


def set_budget(conn: sqlite3.Connection, tag: str, limit: float, alert_threshold: float = 0.9) -> None:
    """One budget per tag; setting it again replaces the limit and threshold."""
    if not (tag or "").strip():
        raise ConfigurationError("Budget tag must not be empty")
    if float(limit) < 0:
        raise ConfigurationError(f"Invalid monthly limit {limit!r}: must be >= 0")
    if not 0 <= float(alert_threshold) <= 1:
        raise ConfigurationError(f"Invalid alert threshold {alert_threshold!r}: must be between 0 and 1")
    db.upsert_budget(conn, tag.strip(), limit, alert_threshold)


def get_budgets(conn: sqlite3.Connection) -> List[Dict]:
    return db.get_budgets(conn)


def delete_budget(conn: sqlite3.Connection, tag: str) -> bool:
    return db.delete_budget(conn, tag)


def get_budget_statuses(conn: sqlite3.Connection, month: Optional[str] = None) -> List[Dict]:
    """
    Spend against each budget for one calendar month (default: this month).
    Spend is outflow only, matched on the resolved tag (tag, else category).
    """
    m = validate_month(month) if month else current_month()
    budgets = db.get_budgets(conn)
    if not budgets:
        return []

    spending = {r["tag"]: r["total"] for r in db.get_spending_by_tag_for_month(conn, m)}

    out = []
    for b in budgets:
        limit = float(b["monthly_limit"])
        spent = float(spending.get(b["tag"]) or 0.0)
        remaining = max(0.0, limit - spent)
        percent_used = spent / limit if limit > 0 else 0.0
        out.append({
            "tag": b["tag"],
            "monthly_limit": limit,
            "alert_threshold": float(b["alert_threshold"]),
            "spent": round(spent, 2),
            "remaining": round(remaining, 2),
            "percent_used": round(percent_used, 3),
            "over_budget": spent > limit,
        })
    return out


def check_alerts(conn: sqlite3.Connection, month: Optional[str] = None) -> List[Dict]:
    return [s for s in get_budget_statuses(conn, month) if s["percent_used"] >= s["alert_threshold"]]


def get_budgets_response(conn: sqlite3.Connection, month: Optional[str] = None) -> Dict:
    m = validate_month(month) if month else current_month()
    return {"budgets": get_budget_statuses(conn, m), "month": m}


# -------------------------------------------------------------------
# Suggestions from history
# -------------------------------------------------------------------

def suggest_budgets(conn: sqlite3.Connection, months: int = 3, today: Optional[date] = None) -> Dict[str, float]:
    """
    Average monthly spend per resolved tag over the last N full months, rounded
    up to the next whole unit. A starting point for set_budget, nothing is stored.
    """
    if int(months) <= 0:
        raise ConfigurationError(f"Invalid months {months!r}: must be positive")
    averages = db.get_average_monthly_spend_by_tag(conn, int(months), today)
    return {tag: float(math.ceil(avg)) for tag, avg in sorted(averages.items()) if avg > 0}


def get_multi_period_spending_summary(
    conn: sqlite3.Connection, periods=(6, 3, 1), today: Optional[date] = None
) -> Dict[str, Dict[str, float]]:
    """
    Average monthly spend per tag over several look-back windows, so a rising
    short-term average stands out against the longer one.
    """
    period_data = {p: db.get_average_monthly_spend_by_tag(conn, p, today) for p in periods}
    all_tags = set()
    for summary in period_data.values():
        all_tags.update(summary.keys())

    consolidated = {}
    for tag in sorted(all_tags):
        consolidated[tag] = {f"avg_{p}m": round(period_data[p].get(tag, 0.0), 2) for p in periods}
    return consolidated
