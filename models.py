"""Feed records, derived transaction properties and response shapes.

Upstream pages are parsed into strict pydantic models at the boundary so
the reconciliation code never sees a loosely-typed SDK object. Stored rows
stay plain dicts (sqlite3.Row -> dict); derived values are pure functions.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _plain(v: Any) -> Any:
    """Unwrap SDK enum-ish wrappers (objects with .value) and dates to plain strings."""
    if v is None:
        return None
    if isinstance(v, (date, datetime)):
        return v.isoformat()[:10]
    if hasattr(v, "value") and not isinstance(v, (str, int, float, bool)):
        return v.value
    return v


class _FeedModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FeedBalances(_FeedModel):
    current: Optional[float] = None
    available: Optional[float] = None
    iso_currency_code: Optional[str] = None


class FeedAccount(_FeedModel):
    """Account snapshot as it arrives on a sync page."""
    account_id: str
    name: str
    official_name: Optional[str] = None
    type: str
    subtype: Optional[str] = None
    mask: Optional[str] = None
    balances: FeedBalances = Field(default_factory=FeedBalances)

    @field_validator("type", "subtype", mode="before")
    @classmethod
    def unwrap_enum(cls, v):
        return _plain(v)


class PersonalFinanceCategory(_FeedModel):
    primary: Optional[str] = None
    detailed: Optional[str] = None


class FeedTransaction(_FeedModel):
    """One added/modified transaction delta."""
    transaction_id: str
    account_id: str
    amount: float
    iso_currency_code: Optional[str] = None
    date: str
    authorized_date: Optional[str] = None
    name: str
    merchant_name: Optional[str] = None
    pending: bool = False
    category: Optional[List[str]] = None
    personal_finance_category: Optional[PersonalFinanceCategory] = None
    payment_channel: Optional[str] = None
    transaction_type: Optional[str] = None

    @field_validator("date", "authorized_date", "payment_channel", "transaction_type", mode="before")
    @classmethod
    def unwrap_plain(cls, v):
        return _plain(v)


class RemovedTransaction(_FeedModel):
    transaction_id: Optional[str] = None


class SyncPage(_FeedModel):
    """One page of a transactions/sync response."""
    added: List[FeedTransaction] = Field(default_factory=list)
    modified: List[FeedTransaction] = Field(default_factory=list)
    removed: List[RemovedTransaction] = Field(default_factory=list)
    accounts: List[FeedAccount] = Field(default_factory=list)
    has_more: bool = False
    next_cursor: str = ""

    def removed_ids(self) -> List[str]:
        return [r.transaction_id for r in self.removed if r.transaction_id]


# -------------------------------------------------------------------
# Feed -> ledger row mapping
# -------------------------------------------------------------------

def transaction_row(t: FeedTransaction) -> Dict[str, Any]:
    pfc = t.personal_finance_category
    legacy = t.category or []
    return {
        "transaction_id": t.transaction_id,
        "account_id": t.account_id,
        # Plaid already uses positive = money out, negative = money in
        "amount": t.amount,
        "iso_currency_code": t.iso_currency_code,
        "date": t.date,
        "authorized_date": t.authorized_date,
        "name": t.merchant_name or t.name,
        "merchant_name": t.merchant_name,
        "pending": 1 if t.pending else 0,
        "category": (pfc.primary if pfc and pfc.primary else None) or (legacy[0] if len(legacy) > 0 else None),
        "subcategory": (pfc.detailed if pfc and pfc.detailed else None) or (legacy[1] if len(legacy) > 1 else None),
        "payment_channel": t.payment_channel,
        "transaction_type": t.transaction_type,
    }


def account_row(a: FeedAccount, item_id: str) -> Dict[str, Any]:
    return {
        "account_id": a.account_id,
        "item_id": item_id,
        "name": a.name,
        "official_name": a.official_name,
        "type": a.type,
        "subtype": a.subtype,
        "mask": a.mask,
        "current_balance": a.balances.current,
        "available_balance": a.balances.available,
        "iso_currency_code": a.balances.iso_currency_code,
    }


# -------------------------------------------------------------------
# Derived properties
# -------------------------------------------------------------------

def is_income(txn: Dict) -> bool:
    return txn["amount"] < 0


def display_name(txn: Dict) -> str:
    return txn.get("merchant_name") or txn["name"]


def is_pending(txn: Dict) -> bool:
    return bool(txn.get("pending"))


def resolved_tag(txn: Dict) -> str:
    return txn.get("tag") or txn.get("category") or "uncategorized"


# -------------------------------------------------------------------
# Response shapes
# -------------------------------------------------------------------

ACCOUNT_FIELDS = (
    "account_id", "name", "official_name", "type", "subtype", "mask",
    "current_balance", "available_balance", "iso_currency_code",
)


def account_response(a: Dict) -> Dict:
    return {k: a.get(k) for k in ACCOUNT_FIELDS}


def transaction_response(t: Dict) -> Dict:
    return {
        "transaction_id": t["transaction_id"],
        "account_id": t["account_id"],
        "amount": t["amount"],
        "date": t["date"],
        "name": t["name"],
        "merchant_name": t.get("merchant_name"),
        "pending": is_pending(t),
        "category": t.get("category"),
        "subcategory": t.get("subcategory"),
        "payment_channel": t.get("payment_channel"),
        "tag": t.get("tag"),
    }


def accounts_response(accounts: List[Dict]) -> Dict:
    return {"accounts": [account_response(a) for a in accounts]}


def transactions_response(txns: List[Dict]) -> Dict:
    return {"transactions": [transaction_response(t) for t in txns], "count": len(txns)}


def search_response(query: str, txns: List[Dict]) -> Dict:
    return {**transactions_response(txns), "query": query}


def grep_response(pattern: str, txns: List[Dict]) -> Dict:
    return {**transactions_response(txns), "pattern": pattern}


def tag_rules_response(rules: List[Dict]) -> Dict:
    out = [{k: r[k] for k in ("id", "pattern", "tag", "priority")} for r in rules]
    return {"rules": out, "count": len(out)}
