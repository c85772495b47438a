"""Budget service - main orchestration layer."""
import logging
import re
import time
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from household_budget.config import (
    ACCOUNT_TYPES,
    DB_PATH,
    FUND_POSITIONS,
    ensure_data_dir
)
from household_budget.core import aggregation
from household_budget.core.aggregation import LedgerSnapshot, summarize_month
from household_budget.core.bills import roll_forward_bills
from household_budget.core.categories import IncomeCategory, display_token, parse_category, to_columns
from household_budget.core.month import Month
from household_budget.core.sealing import AllocationStrategy, MonthSealer, default_allocations
from household_budget.core.settings import SettingsStore
from household_budget.db.sqlite_store import SQLiteStore, to_money
from household_budget.errors import MonthSealedError, NotFoundError, ValidationError
from household_budget.ingestion.simplefin import SimpleFinClient
from household_budget.ingestion.sync import BankSync


logger = logging.getLogger(__name__)


def serialize_split(split: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": split["id"],
        "label": split.get("label"),
        "amount": split["amount"],
        "date": split["date"],
        "category": display_token(split.get("category_type"), split.get("category_id")),
        "income_month": split.get("income_month"),
    }


def serialize_transaction(txn: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a stored transaction for clients, with its category as a token."""
    return {
        "id": txn["id"],
        "connection_id": txn["connection_id"],
        "date": txn["date"],
        "name": txn["name"],
        "amount": txn["amount"],
        "category": display_token(txn.get("category_type"), txn.get("category_id")),
        "income_month": txn.get("income_month"),
        "is_split": txn.get("is_split", False),
        "splits": [serialize_split(s) for s in txn.get("splits") or []],
    }


class BudgetService:
    """Main service for the household budget.

    Orchestrates the ledger store, monthly aggregation, month sealing,
    bill roll-forward and bank sync.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        simplefin_client: Optional[SimpleFinClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
        allocation_strategy: AllocationStrategy = default_allocations
    ):
        """Initialize the budget service.

        Args:
            db_path: Path to SQLite database (default: ~/.household_budget/budget.db)
            simplefin_client: Bank client; a real one is built when omitted
            clock: Returns "now"; injected for testing
            allocation_strategy: Proposes how a month's savings are split across funds
        """
        ensure_data_dir()

        self.db_path = db_path or DB_PATH
        self.clock = clock or datetime.now

        self.store = SQLiteStore(self.db_path)
        self.settings = SettingsStore(self.store)
        self.simplefin = simplefin_client or SimpleFinClient()
        self.sealer = MonthSealer(self.store, clock=self.clock)
        self.bank_sync = BankSync(self.store, self.simplefin, clock=self.clock)
        self.allocation_strategy = allocation_strategy

    def close(self):
        """Close all connections."""
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _month(self, month: Optional[str]) -> Month:
        """Parse a month argument, defaulting to the current month."""
        if not month:
            return Month.current(self.clock())
        return Month.parse(month)

    def _require_transaction(self, txn_id: str) -> Dict[str, Any]:
        txn = self.store.get_transaction(txn_id)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def _check_not_sealed(self, *dates: str) -> None:
        """Reject edits to ledger lines dated in a sealed month."""
        for day in dates:
            month = str(Month.of(day))
            if self.store.is_month_sealed(month):
                raise MonthSealedError(month)

    # === Summary ===

    def get_summary(self, month: Optional[str] = None) -> Dict[str, Any]:
        """Headline figures, bills and fund balances for a month."""
        parsed = self._month(month)
        snapshot = LedgerSnapshot.load(self.store)
        summary = summarize_month(
            snapshot,
            parsed,
            self.store.list_bills_for_month(str(parsed)),
            self.settings.savings_target,
            is_sealed=self.store.is_month_sealed(str(parsed)),
        )
        return summary.to_dict()

    # === Bills ===

    def list_bills(self, month: Optional[str] = None) -> List[Dict[str, Any]]:
        """Bills for a month with their derived paid amount and date."""
        parsed = self._month(month)
        snapshot = LedgerSnapshot.load(self.store)
        return aggregation.bills_with_payments(
            self.store.list_bills_for_month(str(parsed)), snapshot.entries
        )

    def create_bill(self, name: Optional[str], expected_amount: Any, month: Optional[str]) -> Dict[str, Any]:
        if not name or expected_amount is None or not month:
            raise ValidationError("name, expected_amount, and month are required")
        parsed = Month.parse(month)
        amount = to_money(expected_amount)
        bill_id = self.store.add_bill(name.strip(), amount, str(parsed))
        logger.info(f"Added bill {name!r} for {parsed}")
        return {"id": bill_id, "name": name.strip(), "expected_amount": amount, "month": str(parsed)}

    def update_bill(self, bill_id: str, expected_amount: Any = None, name: Optional[str] = None) -> Dict[str, Any]:
        if not self.store.get_bill(bill_id):
            raise NotFoundError("Bill not found")
        if expected_amount is None and not name:
            raise ValidationError("expected_amount or name is required")
        self.store.update_bill(
            bill_id,
            name=name.strip() if name else None,
            expected_amount=to_money(expected_amount) if expected_amount is not None else None,
        )
        return self.store.get_bill(bill_id)

    def delete_bill(self, bill_id: str) -> None:
        if not self.store.delete_bill(bill_id):
            raise NotFoundError("Bill not found")

    def copy_last_month_bills(self, month: Optional[str] = None) -> Dict[str, Any]:
        """Roll the previous month's bills into month and return the new list."""
        parsed = self._month(month)
        stats = roll_forward_bills(self.store, parsed)
        return {**stats, "month": str(parsed), "bills": self.list_bills(str(parsed))}

    # === Funds ===

    def list_funds(self) -> List[Dict[str, Any]]:
        """Funds with current balances and display settings."""
        return LedgerSnapshot.load(self.store).fund_balances()

    def create_fund(self, name: Optional[str]) -> Dict[str, Any]:
        if not name or not name.strip():
            raise ValidationError("name is required")
        name = name.strip()
        slug = re.sub(r"\s+", "-", name.lower())
        fund_id = f"fund-{slug}-{int(time.time() * 1000)}"
        self.store.add_fund(fund_id, name)
        logger.info(f"Created fund {fund_id}")
        return {"id": fund_id, "name": name}

    def delete_fund(self, fund_id: str) -> None:
        if not self.store.delete_fund(fund_id):
            raise NotFoundError("Fund not found")
        logger.info(f"Deleted fund {fund_id}")

    def update_fund_settings(
        self,
        fund_id: str,
        display_name: Optional[str],
        position: Optional[str],
        is_visible: Optional[bool] = None,
        override_amount: Any = None
    ) -> None:
        """Set a fund's display name, column, visibility and starting balance.

        An override of zero or None clears it, so the balance goes back to
        the sum of allocations.
        """
        if not display_name or not position:
            raise ValidationError("display_name and position are required")
        if position not in FUND_POSITIONS:
            raise ValidationError(f"Invalid position. Must be one of: {FUND_POSITIONS}")
        if not self.store.get_fund(fund_id):
            raise NotFoundError("Fund not found")

        override = to_money(override_amount) if override_amount is not None else None
        if override is not None and override == 0:
            override = None

        self.store.upsert_fund_settings(
            fund_id,
            display_name,
            position,
            is_visible=True if is_visible is None else is_visible,
            override_amount=override,
        )

    def get_default_allocations(self, month: Optional[str] = None) -> Dict[str, Any]:
        """Proposed allocation of a month's savings, as offered by the seal dialog."""
        summary = self.get_summary(month)
        funds = summary["fund_balances"]
        proposal = self.allocation_strategy(funds, summary["total_saved"])
        return {
            "month": summary["month"],
            "total_saved": summary["total_saved"],
            "allocations": [
                {"fund_id": f["fund_id"], "name": f["name"], "amount": proposal.get(f["fund_id"], Decimal("0.00"))}
                for f in funds
            ],
        }

    # === Connections ===

    def list_connections(self) -> List[Dict[str, Any]]:
        return self.store.get_all_connections()

    def create_connection(
        self,
        connection_id: Optional[str],
        name: Optional[str],
        account_type: Optional[str] = None,
        is_on_budget: Optional[bool] = None
    ) -> Dict[str, Any]:
        if not connection_id or not name:
            raise ValidationError("id and name are required")
        if account_type and account_type not in ACCOUNT_TYPES:
            raise ValidationError(f"Invalid account_type. Must be one of: {ACCOUNT_TYPES}")
        self.store.add_connection(
            connection_id,
            name,
            account_type=account_type,
            is_on_budget=True if is_on_budget is None else is_on_budget,
        )
        return self.store.get_connection(connection_id)

    def update_connection(
        self,
        connection_id: str,
        is_on_budget: Optional[bool] = None,
        display_name: Optional[str] = None,
        account_type: Optional[str] = None
    ) -> Dict[str, Any]:
        if not self.store.get_connection(connection_id):
            raise NotFoundError("Connection not found")
        if account_type and account_type not in ACCOUNT_TYPES:
            raise ValidationError(f"Invalid account_type. Must be one of: {ACCOUNT_TYPES}")

        updates = {}
        if is_on_budget is not None:
            updates["is_on_budget"] = is_on_budget
        if display_name is not None:
            updates["display_name"] = display_name
        if account_type is not None:
            updates["account_type"] = account_type
        if not updates:
            raise ValidationError("No valid fields to update")

        self.store.update_connection(connection_id, **updates)
        return self.store.get_connection(connection_id)

    def delete_connection(self, connection_id: str) -> None:
        if not self.store.delete_connection(connection_id):
            raise NotFoundError("Connection not found")
        logger.info(f"Deleted connection {connection_id} and its transactions")

    def get_connection_transactions(self, connection_id: str) -> List[Dict[str, Any]]:
        if not self.store.get_connection(connection_id):
            raise NotFoundError("Connection not found")
        return [serialize_transaction(t) for t in self.store.get_connection_transactions(connection_id)]

    def get_net_worth(self) -> Dict[str, Any]:
        connections = self.store.get_all_connections()
        return {**aggregation.net_worth(connections), "connections": connections}

    # === Transactions ===

    def list_transactions(self, month: Optional[str] = None) -> List[Dict[str, Any]]:
        """On-budget transactions dated in a month, newest first."""
        start, end = self._month(month).date_range()
        txns = self.store.get_on_budget_transactions(start_date=start, end_date=end)
        return [serialize_transaction(t) for t in txns]

    def create_transaction(
        self,
        name: Optional[str],
        amount: Any,
        date: Optional[str],
        category: Optional[str] = None,
        income_month: Optional[str] = None
    ) -> Dict[str, Any]:
        """Record a manual transaction on the synthetic Manual connection."""
        if not name or amount is None or not date:
            raise ValidationError("name, amount, and date are required")
        date = _iso_date(date)

        category_type = category_id = stored_income_month = None
        if category:
            category_type, category_id, stored_income_month = _category_columns(category, income_month)

        connection_id = self.store.ensure_manual_connection()
        txn_id = self.store.add_transaction(
            connection_id,
            date,
            name,
            to_money(amount),
            category_type=category_type,
            category_id=category_id,
            income_month=stored_income_month,
        )
        return serialize_transaction(self.store.get_transaction(txn_id))

    def categorize_transaction(
        self,
        txn_id: str,
        category: Optional[str],
        income_month: Optional[str] = None
    ) -> Dict[str, Any]:
        """Assign a category token to an unsplit transaction.

        A split transaction is categorized through its splits; clear them first.
        """
        if not category:
            raise ValidationError("category is required")
        txn = self._require_transaction(txn_id)
        if txn["is_split"]:
            raise ValidationError("Transaction is split; categorize its splits or clear them first")
        self._check_not_sealed(txn["date"])

        self.store.update_transaction_category(txn_id, *_category_columns(category, income_month))
        return serialize_transaction(self.store.get_transaction(txn_id))

    def set_splits(self, txn_id: str, splits: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        """Replace a transaction's splits.

        Fewer than two splits un-split the transaction instead. The split
        magnitudes may not add up to more than the parent's magnitude.
        """
        if splits is None:
            raise ValidationError("splits array is required")
        txn = self._require_transaction(txn_id)
        current_dates = [s["date"] for s in txn["splits"]]

        if len(splits) < 2:
            self._check_not_sealed(txn["date"], *current_dates)
            self.store.clear_transaction_splits(txn_id)
            return serialize_transaction(self.store.get_transaction(txn_id))

        rows = []
        for split in splits:
            if split.get("amount") is None or not split.get("date"):
                raise ValidationError("Each split needs an amount and a date")
            category = split.get("category")
            if category:
                kind, target, month = _category_columns(category, split.get("income_month"))
            else:
                kind = target = month = None
            rows.append({
                "id": split.get("id"),
                "label": split.get("label"),
                "amount": abs(to_money(split["amount"])),
                "date": _iso_date(split["date"]),
                "category_type": kind,
                "category_id": target,
                "income_month": month,
            })

        total = sum((r["amount"] for r in rows), Decimal("0.00"))
        if total > abs(txn["amount"]):
            raise ValidationError(f"Splits total {total} exceeds transaction amount {abs(txn['amount'])}")

        self._check_not_sealed(txn["date"], *current_dates, *(r["date"] for r in rows))

        with self.store.transaction():
            self.store.replace_transaction_splits(txn_id, rows)
        return serialize_transaction(self.store.get_transaction(txn_id))

    def clear_splits(self, txn_id: str) -> Dict[str, Any]:
        """Remove all splits; the transaction goes back to uncategorized."""
        txn = self._require_transaction(txn_id)
        self._check_not_sealed(txn["date"], *(s["date"] for s in txn["splits"]))
        with self.store.transaction():
            self.store.clear_transaction_splits(txn_id)
        return serialize_transaction(self.store.get_transaction(txn_id))

    def delete_split(self, txn_id: str, split_id: str) -> Dict[str, Any]:
        """Remove one split, un-splitting the parent if fewer than two remain."""
        txn = self._require_transaction(txn_id)
        split = next((s for s in txn["splits"] if s["id"] == split_id), None)
        if split is None:
            raise NotFoundError("Split not found")
        self._check_not_sealed(txn["date"], split["date"])

        with self.store.transaction():
            self.store.delete_split(split_id)
            if len(self.store.get_transaction_splits(txn_id)) < 2:
                self.store.clear_transaction_splits(txn_id)
        return serialize_transaction(self.store.get_transaction(txn_id))

    # === Month breakdowns ===

    def get_income_transactions(self, month: str) -> Dict[str, Any]:
        parsed = Month.parse(month)
        snapshot = LedgerSnapshot.load(self.store)
        return {
            "month": str(parsed),
            "total": aggregation.income_for_month(snapshot.entries, parsed),
            "transactions": [
                serialize_transaction(t)
                for t in aggregation.income_transactions_for_month(snapshot.transactions, parsed)
            ],
        }

    def get_spending(self, month: str) -> Dict[str, Any]:
        parsed = Month.parse(month)
        snapshot = LedgerSnapshot.load(self.store)
        return {
            "month": str(parsed),
            "total": aggregation.everything_else_for_month(snapshot.entries, parsed),
            "transactions": aggregation.spending_for_month(snapshot.entries, parsed),
        }

    def get_fund_activity(self, month: str) -> Dict[str, Any]:
        parsed = Month.parse(month)
        snapshot = LedgerSnapshot.load(self.store)
        return {
            "month": str(parsed),
            "transactions": aggregation.fund_activity_for_month(snapshot.entries, parsed),
        }

    # === Sealing ===

    def seal_month(self, month: Optional[str], allocations: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        return self.sealer.seal(month, allocations)

    # === Settings ===

    def get_savings_target(self) -> Decimal:
        return self.settings.savings_target

    def set_savings_target(self, value: Any) -> Decimal:
        if value is None:
            raise ValidationError("value is required")
        return self.settings.set_savings_target(value)

    # === SimpleFIN ===

    def setup_simplefin(self, setup_token: Optional[str]) -> None:
        """Claim a setup token and store the resulting access URL."""
        if not setup_token:
            raise ValidationError("setupToken is required")
        access_url = self.simplefin.claim_setup_token(setup_token)
        self.settings.set_simplefin_access_url(access_url)
        logger.info("SimpleFIN connected")

    def sync(self) -> Dict[str, Any]:
        return self.bank_sync.sync()

    def disconnect_simplefin(self) -> None:
        self.settings.clear_simplefin_access_url()
        logger.info("SimpleFIN disconnected")


def _iso_date(value: str) -> str:
    """Validate an ISO date, returning its YYYY-MM-DD part."""
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date().isoformat()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date: {value!r}. Use YYYY-MM-DD")


def _income_month(value: Optional[str]) -> Optional[str]:
    return str(Month.parse(value)) if value else None


def _category_columns(token: str, income_month: Optional[str]) -> tuple:
    """Storage columns for a category token; income needs the month it counts toward."""
    category = parse_category(token, _income_month(income_month))
    if isinstance(category, IncomeCategory) and not category.month:
        raise ValidationError("income_month is required for income")
    return to_columns(category)
