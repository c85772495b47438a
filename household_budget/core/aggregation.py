"""Monthly aggregation over the on-budget ledger.

Everything here is derived on read: bill paid state, totals, fund balances
and the headline cash figures are never stored. The store is read once into a
LedgerSnapshot and every figure is a pure function of that snapshot, so the
seal-month checks see the same numbers the summary showed.

Split amounts are stored as magnitudes; a split's signed contribution is
abs(split amount) * sign(parent amount).
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from household_budget.config import DEFAULT_FUND_POSITION, DEFAULT_FUND_POSITIONS
from household_budget.core.categories import (
    BillCategory,
    Category,
    EverythingElse,
    FundCategory,
    IncomeCategory,
    Uncategorized,
    from_columns,
)
from household_budget.core.month import Month
from household_budget.db.sqlite_store import SQLiteStore


ZERO = Decimal("0.00")


@dataclass(frozen=True)
class LedgerEntry:
    """One categorizable line: an unsplit transaction or a single split."""

    id: str
    transaction_id: str
    name: str
    date: str
    amount: Decimal  # signed
    category: Optional[Category]
    is_split: bool = False
    label: Optional[str] = None


def _sign(amount: Decimal) -> int:
    return -1 if amount < 0 else 1


def ledger_entries(transactions: Iterable[Dict[str, Any]]) -> List[LedgerEntry]:
    """Flatten transactions into entries, replacing split parents by their splits."""
    entries = []
    for txn in transactions:
        if txn.get("is_split"):
            sign = _sign(txn["amount"])
            for split in txn.get("splits") or []:
                entries.append(LedgerEntry(
                    id=split["id"],
                    transaction_id=txn["id"],
                    name=txn["name"],
                    date=split["date"],
                    amount=abs(split["amount"]) * sign,
                    category=from_columns(
                        split.get("category_type"),
                        split.get("category_id"),
                        split.get("income_month"),
                    ),
                    is_split=True,
                    label=split.get("label"),
                ))
        else:
            entries.append(LedgerEntry(
                id=txn["id"],
                transaction_id=txn["id"],
                name=txn["name"],
                date=txn["date"],
                amount=txn["amount"],
                category=from_columns(
                    txn.get("category_type"),
                    txn.get("category_id"),
                    txn.get("income_month"),
                ),
            ))
    return entries


def _in_month(entries: Iterable[LedgerEntry], month: Month) -> List[LedgerEntry]:
    start, end = month.date_range()
    return [e for e in entries if start <= e.date[:10] < end]


def _total(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


# === Income and spending ===

def income_for_month(entries: Iterable[LedgerEntry], month: Month) -> Decimal:
    """Income attributed to a month by income month, not by transaction date."""
    key = str(month)
    return _total(
        e.amount for e in entries
        if isinstance(e.category, IncomeCategory) and e.category.month == key
    )


def everything_else_for_month(entries: Iterable[LedgerEntry], month: Month) -> Decimal:
    """Discretionary spending dated inside the month, as a positive figure.

    Unsplit lines and splits are netted separately, so a refund tagged
    everything_else offsets purchases of the same kind.
    """
    matching = [e for e in _in_month(entries, month) if isinstance(e.category, EverythingElse)]
    unsplit = _total(e.amount for e in matching if not e.is_split)
    split = _total(e.amount for e in matching if e.is_split)
    return abs(unsplit) + abs(split)


def expenses_for_month(entries: Iterable[LedgerEntry], month: Month) -> Decimal:
    """Net bill plus everything-else spending dated inside the month."""
    return abs(_total(
        e.amount for e in _in_month(entries, month)
        if isinstance(e.category, (BillCategory, EverythingElse))
    ))


def uncategorized_count(entries: Iterable[LedgerEntry], month: Month) -> int:
    """Entries dated in the month that still need a category.

    Unsplit transactions count when explicitly uncategorized; splits also count
    when no category was assigned at all.
    """
    count = 0
    for e in _in_month(entries, month):
        if isinstance(e.category, Uncategorized):
            count += 1
        elif e.is_split and e.category is None:
            count += 1
    return count


def spending_for_month(entries: Iterable[LedgerEntry], month: Month) -> List[Dict[str, Any]]:
    """Everything-else lines for the month, newest first."""
    rows = [
        {
            "id": e.id,
            "transaction_id": e.transaction_id,
            "date": e.date,
            "name": e.name,
            "amount": e.amount,
            "is_split": e.is_split,
        }
        for e in _in_month(entries, month)
        if isinstance(e.category, EverythingElse)
    ]
    rows.sort(key=lambda r: r["date"], reverse=True)
    return rows


def fund_activity_for_month(entries: Iterable[LedgerEntry], month: Month) -> List[Dict[str, Any]]:
    """Signed fund-tagged lines dated in the month, newest first."""
    rows = [
        {
            "fund_id": e.category.fund_id,
            "id": e.id,
            "transaction_id": e.transaction_id,
            "date": e.date,
            "name": e.name,
            "amount": e.amount,
        }
        for e in _in_month(entries, month)
        if isinstance(e.category, FundCategory) and e.category.fund_id
    ]
    rows.sort(key=lambda r: r["date"], reverse=True)
    return rows


def income_transactions_for_month(
    transactions: Iterable[Dict[str, Any]],
    month: Month
) -> List[Dict[str, Any]]:
    """Transactions carrying income for the month, directly or through a split."""
    key = str(month)
    matches = []
    for txn in transactions:
        if txn.get("is_split"):
            if any(
                s.get("category_type") == IncomeCategory.kind and s.get("income_month") == key
                for s in txn.get("splits") or []
            ):
                matches.append(txn)
        elif txn.get("category_type") == IncomeCategory.kind and txn.get("income_month") == key:
            matches.append(txn)
    return matches


def transaction_count_for_month(transactions: Iterable[Dict[str, Any]], month: Month) -> int:
    return sum(1 for t in transactions if month.contains(t["date"]))


# === Bills ===

def bill_payments(
    entries: Iterable[LedgerEntry],
    bill_ids: Iterable[str]
) -> Dict[str, Tuple[Decimal, str]]:
    """Paid amount and latest payment date per bill id.

    Matching is by target id only. Bill ids are minted per month, so any line
    pointing at a bill belongs to that bill's month whatever its date.
    """
    wanted = set(bill_ids)
    paid: Dict[str, Tuple[Decimal, str]] = {}
    for e in entries:
        if not isinstance(e.category, BillCategory) or e.category.bill_id not in wanted:
            continue
        amount, latest = paid.get(e.category.bill_id, (ZERO, ""))
        paid[e.category.bill_id] = (amount + abs(e.amount), max(latest, e.date))
    return paid


def bills_with_payments(
    bill_rows: Iterable[Dict[str, Any]],
    entries: Iterable[LedgerEntry]
) -> List[Dict[str, Any]]:
    """Attach derived paid amount/date to each bill row."""
    bill_rows = list(bill_rows)
    paid = bill_payments(entries, (b["id"] for b in bill_rows))
    bills = []
    for row in bill_rows:
        amount, paid_date = paid.get(row["id"], (None, None))
        bills.append({
            "id": row["id"],
            "name": row["name"],
            "month": row.get("month"),
            "expected_amount": row["expected_amount"],
            "paid_amount": amount,
            "date": paid_date,
            "is_paid": amount is not None and amount > 0,
        })
    return bills


def bill_totals(bills: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    bills = list(bills)
    return {
        "paid_count": sum(1 for b in bills if b["is_paid"]),
        "total_count": len(bills),
        "expected_total": _total(b["expected_amount"] for b in bills),
        "paid_total": _total(b["paid_amount"] for b in bills if b["paid_amount"] is not None),
    }


# === Funds ===

def fund_balances(
    funds: Iterable[Dict[str, Any]],
    settings: Iterable[Dict[str, Any]],
    allocation_totals: Dict[str, Decimal],
    entries: Iterable[LedgerEntry]
) -> List[Dict[str, Any]]:
    """Current balance of every fund.

    Starting balance is the settings override when present, otherwise the sum
    of sealed-month allocations. Every fund-tagged line ever recorded is then
    added with its sign.
    """
    settings_by_fund = {s["fund_id"]: s for s in settings}
    activity: Dict[str, Decimal] = {}
    for e in entries:
        if isinstance(e.category, FundCategory):
            activity[e.category.fund_id] = activity.get(e.category.fund_id, ZERO) + e.amount

    balances = []
    for fund in funds:
        setting = settings_by_fund.get(fund["id"])
        override = setting.get("override_amount") if setting else None
        starting = override if override is not None else allocation_totals.get(fund["id"], ZERO)
        balances.append({
            "fund_id": fund["id"],
            "name": setting["display_name"] if setting else fund["name"],
            "balance": starting + activity.get(fund["id"], ZERO),
            "position": setting["position"] if setting else DEFAULT_FUND_POSITIONS.get(fund["id"], DEFAULT_FUND_POSITION),
            "is_visible": setting["is_visible"] if setting else True,
            "override_amount": override,
        })
    return balances


# === Connections ===

def net_worth(connections: Iterable[Dict[str, Any]]) -> Dict[str, Decimal]:
    """Sum of all connection balances, with on/off-budget subtotals."""
    on_budget = ZERO
    off_budget = ZERO
    for conn in connections:
        if conn["is_on_budget"]:
            on_budget += conn["current_balance"]
        else:
            off_budget += conn["current_balance"]
    return {"total": on_budget + off_budget, "on_budget": on_budget, "off_budget": off_budget}


# === Snapshot and summary ===

@dataclass
class LedgerSnapshot:
    """Everything the aggregation needs, read from the store in one pass."""

    transactions: List[Dict[str, Any]]
    funds: List[Dict[str, Any]] = field(default_factory=list)
    fund_settings: List[Dict[str, Any]] = field(default_factory=list)
    allocation_totals: Dict[str, Decimal] = field(default_factory=dict)
    entries: List[LedgerEntry] = field(init=False)

    def __post_init__(self):
        self.entries = ledger_entries(self.transactions)

    @classmethod
    def load(cls, store: SQLiteStore) -> "LedgerSnapshot":
        return cls(
            transactions=store.get_on_budget_transactions(),
            funds=store.get_all_funds(),
            fund_settings=store.get_fund_settings(),
            allocation_totals=store.get_allocation_totals(),
        )

    def fund_balances(self) -> List[Dict[str, Any]]:
        return fund_balances(self.funds, self.fund_settings, self.allocation_totals, self.entries)


@dataclass
class MonthSummary:
    """Headline figures for one month."""

    month: str
    income: Decimal
    bills: List[Dict[str, Any]]
    bills_paid_count: int
    bills_total_count: int
    bills_expected_total: Decimal
    bills_paid_total: Decimal
    everything_else: Decimal
    expenses: Decimal
    uncategorized_count: int
    transaction_count: int
    savings_target: Decimal
    total_remaining_cash: Decimal
    remaining_cash: Decimal
    total_saved: Decimal
    is_sealed: bool
    fund_balances: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def summarize_month(
    snapshot: LedgerSnapshot,
    month: Month,
    bill_rows: Iterable[Dict[str, Any]],
    savings_target: Decimal,
    is_sealed: bool = False
) -> MonthSummary:
    """Build the monthly summary.

    total_remaining_cash = income - bills expected - everything else
    remaining_cash = total_remaining_cash - savings target
    """
    income = income_for_month(snapshot.entries, month)
    bills = bills_with_payments(bill_rows, snapshot.entries)
    totals = bill_totals(bills)
    everything_else = everything_else_for_month(snapshot.entries, month)

    total_remaining = income - totals["expected_total"] - everything_else
    remaining = total_remaining - savings_target

    return MonthSummary(
        month=str(month),
        income=income,
        bills=bills,
        bills_paid_count=totals["paid_count"],
        bills_total_count=totals["total_count"],
        bills_expected_total=totals["expected_total"],
        bills_paid_total=totals["paid_total"],
        everything_else=everything_else,
        expenses=expenses_for_month(snapshot.entries, month),
        uncategorized_count=uncategorized_count(snapshot.entries, month),
        transaction_count=transaction_count_for_month(snapshot.transactions, month),
        savings_target=savings_target,
        total_remaining_cash=total_remaining,
        remaining_cash=remaining,
        total_saved=max(ZERO, remaining),
        is_sealed=is_sealed,
        fund_balances=snapshot.fund_balances(),
    )
