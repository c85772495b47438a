"""Month sealing: close a month's books and allocate its savings into funds.

A month is Open until a sealed_months row exists for it, then Sealed for good.
"""
import logging
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from household_budget.config import HOUSE_ALLOCATION_CAP, TRAVEL_ALLOCATION_CAP
from household_budget.core.aggregation import LedgerSnapshot, uncategorized_count
from household_budget.core.month import Month
from household_budget.db.sqlite_store import SQLiteStore, to_money
from household_budget.errors import (
    MonthAlreadySealedError,
    MonthNotEndedError,
    UncategorizedTransactionsError,
    ValidationError,
)


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

AllocationStrategy = Callable[[List[Dict[str, Any]], Decimal], Dict[str, Decimal]]


def default_allocations(funds: List[Dict[str, Any]], total_saved: Decimal) -> Dict[str, Decimal]:
    """Suggest how to spread a month's savings across the household funds.

    House takes up to 200 first, then Travel up to 100. Whatever is left is
    halved between Madison and Josh, Madison getting the half rounded down to
    the cent and Josh the rest. Funds with other names get nothing. This is a
    proposal for the seal dialog only; sealing accepts any amounts.

    Args:
        funds: fund dicts with "fund_id" (or "id") and "name"
        total_saved: savings available to allocate

    Returns:
        Mapping of fund id to proposed amount
    """
    def fund_id(fund):
        return fund.get("fund_id") or fund.get("id")

    def named(name):
        return next((f for f in funds if f.get("name") == name), None)

    alloc = {fund_id(f): ZERO for f in funds}
    remaining = to_money(total_saved)

    for name, cap in (("House", HOUSE_ALLOCATION_CAP), ("Travel", TRAVEL_ALLOCATION_CAP)):
        fund = named(name)
        if fund and remaining > 0:
            alloc[fund_id(fund)] = to_money(min(cap, remaining))
            remaining -= alloc[fund_id(fund)]

    madison = named("Madison")
    josh = named("Josh")
    if remaining > 0 and madison and josh:
        half = (remaining / 2).quantize(Decimal("0.01"), rounding=ROUND_DOWN)
        alloc[fund_id(madison)] = half
        alloc[fund_id(josh)] = remaining - half
    elif remaining > 0 and madison:
        alloc[fund_id(madison)] = remaining
    elif remaining > 0 and josh:
        alloc[fund_id(josh)] = remaining

    return alloc


class MonthSealer:
    """Validate and commit the Open -> Sealed transition for a month."""

    def __init__(self, store: SQLiteStore, clock: Optional[Callable[[], datetime]] = None):
        """Initialize the sealer.

        Args:
            store: SQLiteStore holding the ledger
            clock: returns "now"; injected for testing
        """
        self.store = store
        self.clock = clock or datetime.now

    def check(self, month: Optional[str]) -> Month:
        """Run the seal preconditions in order; the first failure is raised.

        1. month is MM/YYYY
        2. the month has ended
        3. the month is not sealed yet
        4. no uncategorized transactions remain in the month
        """
        parsed = Month.parse(month)
        if not parsed.has_ended(self.clock()):
            raise MonthNotEndedError()
        if self.store.is_month_sealed(str(parsed)):
            raise MonthAlreadySealedError()
        remaining = uncategorized_count(LedgerSnapshot.load(self.store).entries, parsed)
        if remaining > 0:
            raise UncategorizedTransactionsError(remaining)
        return parsed

    def _normalize_allocations(self, allocations: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        known = {f["id"] for f in self.store.get_all_funds()}
        normalized = []
        for alloc in allocations:
            fund_id = alloc.get("fund_id")
            if not fund_id or alloc.get("amount") is None:
                raise ValidationError("Each allocation needs a fund_id and an amount")
            if fund_id not in known:
                raise ValidationError(f"Unknown fund: {fund_id}")
            amount = to_money(alloc["amount"])
            # Zero allocations are not recorded; negatives pull money out
            if amount != 0:
                normalized.append({"fund_id": fund_id, "amount": amount})
        return normalized

    def seal(self, month: Optional[str], allocations: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        """Seal a month and record its fund allocations atomically.

        Args:
            month: "MM/YYYY"
            allocations: list of {"fund_id", "amount"}; zero amounts are skipped

        Returns:
            Dict with the month and the allocations written
        """
        if not month or allocations is None:
            raise ValidationError("month and allocations are required")

        parsed = self.check(month)
        to_write = self._normalize_allocations(allocations)

        with self.store.transaction():
            for alloc in to_write:
                self.store.add_fund_allocation(alloc["fund_id"], str(parsed), alloc["amount"])
            self.store.add_sealed_month(str(parsed))

        total = sum((a["amount"] for a in to_write), ZERO)
        logger.info(f"Sealed {parsed}: {len(to_write)} allocations totalling {total}")
        return {"ok": True, "month": str(parsed), "allocations": to_write}
