"""Bill roll-forward: mirror last month's bill set into the current month."""
import logging
from typing import Any, Dict

from household_budget.core.month import Month
from household_budget.db.sqlite_store import SQLiteStore


logger = logging.getLogger(__name__)


def normalize_bill_name(name: str) -> str:
    """Matching key for bills across months."""
    return name.strip().lower()


def roll_forward_bills(store: SQLiteStore, current_month: Month) -> Dict[str, Any]:
    """Copy the previous month's bills into current_month.

    Bills already in the current month keep their id (and so their payment
    history) when a previous-month bill has the same normalized name; their
    name and expected amount are reset to the previous month's. Current bills
    with no counterpart, and all but the first of any duplicate names, are
    deleted. A name repeated in the previous month is copied once. Runs as
    one transaction.

    Returns:
        Counts of bills updated, inserted and deleted
    """
    previous_month = current_month.previous()
    stats = {"previous_month": str(previous_month), "updated": 0, "inserted": 0, "deleted": 0}

    with store.transaction():
        previous_bills = store.list_bills_for_month(str(previous_month))
        current_bills = store.list_bills_for_month(str(current_month))

        # Keep one current bill per name; the rest are removed below
        current_by_name = {}
        duplicate_ids = set()
        for bill in current_bills:
            key = normalize_bill_name(bill["name"])
            if key in current_by_name:
                duplicate_ids.add(bill["id"])
            else:
                current_by_name[key] = bill

        previous_names = set()
        kept_ids = set()
        for prev in previous_bills:
            key = normalize_bill_name(prev["name"])
            if key in previous_names:
                continue
            previous_names.add(key)
            existing = current_by_name.get(key)
            if existing is not None:
                store.update_bill(existing["id"], name=prev["name"], expected_amount=prev["expected_amount"])
                kept_ids.add(existing["id"])
                stats["updated"] += 1
            else:
                store.add_bill(prev["name"], prev["expected_amount"], str(current_month))
                stats["inserted"] += 1

        for bill in current_bills:
            if bill["id"] in duplicate_ids or bill["id"] not in kept_ids:
                store.delete_bill(bill["id"])
                stats["deleted"] += 1

    logger.info(
        f"Rolled bills {previous_month} -> {current_month}: "
        f"{stats['updated']} updated, {stats['inserted']} inserted, {stats['deleted']} deleted"
    )
    return stats
