# plaid_sync.py: incremental transactions/sync reconciliation
# -------------------------------------------------------
# One pass per item:
#   1) start from the stored cursor ('' = full resync)
#   2) page through the feed, collecting added / modified / removed in memory;
#      account snapshots are upserted as each page arrives (idempotent)
#   3) once has_more is false: upsert transactions, delete removed ids and
#      store the final cursor in ONE transaction
# A failed page aborts the pass before anything but accounts is written, so the
# next run resumes from the last committed cursor. No storage transaction is
# held open across a network call.

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List, Protocol

from pydantic import ValidationError

import database as db
from errors import ConfigurationError, ReconciliationError
from models import SyncPage, account_row, transaction_row

logger = logging.getLogger(__name__)


class TransactionsFeed(Protocol):
    def transactions_sync(self, access_token: str, cursor: str = "") -> Dict: ...


def _fetch_all_pages(conn: sqlite3.Connection, feed: TransactionsFeed, item_id: str,
                     access_token: str, cursor: str):
    added: List[Dict] = []
    modified: List[Dict] = []
    removed: List[str] = []
    has_more = True
    pages = 0
    while has_more:
        page = SyncPage.model_validate(feed.transactions_sync(access_token, cursor))
        pages += 1
        added.extend(transaction_row(t) for t in page.added)
        modified.extend(transaction_row(t) for t in page.modified)
        removed.extend(page.removed_ids())
        if page.accounts:
            db.upsert_accounts(conn, [account_row(a, item_id) for a in page.accounts])
        has_more = page.has_more
        cursor = page.next_cursor
        logger.debug("item %s page %d: +%d ~%d -%d (has_more=%s)",
                     item_id, pages, len(page.added), len(page.modified), len(page.removed), has_more)
    return added, modified, removed, cursor


def sync_item(conn: sqlite3.Connection, feed: TransactionsFeed, item_id: str, access_token: str) -> Dict:
    """Reconcile one item. Returns SyncResponse; raises ReconciliationError on any failure."""
    state = db.get_sync_state(conn, item_id)
    cursor = (state or {}).get("cursor") or ""

    try:
        added, modified, removed, cursor = _fetch_all_pages(conn, feed, item_id, access_token, cursor)
    except ValidationError as e:
        raise ReconciliationError(f"Sync failed for item {item_id}: unexpected feed payload: {e}", item_id) from e
    except Exception as e:
        raise ReconciliationError(f"Sync failed for item {item_id}: {e}", item_id) from e

    try:
        with db.atomic(conn):
            db.upsert_transactions(conn, added + modified)
            db.remove_transactions(conn, removed)
            db.set_sync_state(conn, item_id, cursor)
    except sqlite3.Error as e:
        raise ReconciliationError(f"Sync failed for item {item_id}: could not store batch: {e}", item_id) from e

    logger.info("Synced item %s: %d added, %d modified, %d removed", item_id, len(added), len(modified), len(removed))
    return {
        "added": len(added),
        "modified": len(modified),
        "removed": len(removed),
        "cursor": cursor,
        "has_more": False,
    }


def sync_all(conn: sqlite3.Connection, feed: TransactionsFeed, items: List[Dict]) -> Dict:
    """
    Sync every linked item in turn. Each item commits on its own; a failing item
    is recorded under `errors` and the remaining items still run.
    `items` is a list of {"item_id", "access_token"} (see config.get_decrypted_access_tokens).
    """
    if not items:
        raise ConfigurationError("No linked accounts. Run `cashflow link` first.")

    totals = {"added": 0, "modified": 0, "removed": 0, "cursor": "", "has_more": False}
    per_item: List[Dict] = []
    errors: List[Dict] = []
    for item in items:
        item_id = item["item_id"]
        try:
            result = sync_item(conn, feed, item_id, item["access_token"])
        except ReconciliationError as e:
            logger.warning("Sync failed for item %s: %s", item_id, e)
            errors.append({"item_id": item_id, "code": e.code, "error": str(e)})
            continue
        for k in ("added", "modified", "removed"):
            totals[k] += result[k]
        totals["cursor"] = result["cursor"]
        per_item.append({"item_id": item_id, **result})

    return {**totals, "items": per_item, "errors": errors}
