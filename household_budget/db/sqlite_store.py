"""SQLite store for the household ledger: connections, transactions, bills and funds."""
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Dict, Any, Optional, Iterable

from household_budget.config import (
    MANUAL_CONNECTION_ID,
    MANUAL_CONNECTION_NAME,
)
from household_budget.core.categories import UNCATEGORIZED
from household_budget.errors import MonthAlreadySealedError, ValidationError

from .schema import SCHEMA_SQL


CENT = Decimal("0.01")

MONEY_COLUMNS = (
    "amount",
    "current_balance",
    "expected_amount",
    "paid_amount",
    "override_amount",
)
BOOL_COLUMNS = ("is_on_budget", "is_split", "is_visible")


def to_money(value: Any) -> Decimal:
    """Coerce a number or numeric string to a two-decimal Decimal."""
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


def _to_money_str(value: Any) -> Optional[str]:
    """Convert Decimal, float or int to a string for SQLite storage."""
    if value is None:
        return None
    return str(to_money(value))


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    """Convert a row, turning money columns into Decimal and flags into bool."""
    data = dict(row)
    for key in MONEY_COLUMNS:
        if key in data and data[key] is not None:
            data[key] = Decimal(data[key])
    for key in BOOL_COLUMNS:
        if key in data and data[key] is not None:
            data[key] = bool(data[key])
    return data


def new_id() -> str:
    return str(uuid.uuid4())


class SQLiteStore:
    """SQLite storage for the ledger, bills, funds and app settings."""

    def __init__(self, db_path: Path):
        """Initialize the store with database path."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        # Enable WAL mode for better concurrency
        self.conn.execute("PRAGMA journal_mode=WAL")
        # Cascading deletes depend on this (off by default in SQLite)
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._transaction_depth = 0
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()
        cursor.executescript(SCHEMA_SQL)
        self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    @contextmanager
    def transaction(self):
        """Run a block of store calls as one all-or-nothing unit.

        Nested blocks join the outermost one. Any exception rolls back every
        write made inside the block and is re-raised.
        """
        self._transaction_depth += 1
        try:
            yield self
        except BaseException:
            self._transaction_depth -= 1
            if self._transaction_depth == 0:
                self.conn.rollback()
            raise
        else:
            self._transaction_depth -= 1
            if self._transaction_depth == 0:
                self.conn.commit()

    def _commit(self) -> None:
        """Commit unless an enclosing transaction() block will."""
        if self._transaction_depth == 0:
            self.conn.commit()

    def get_tables(self) -> List[str]:
        """Get list of tables in the database."""
        cursor = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )
        return [row[0] for row in cursor.fetchall()]

    # === Connection Methods ===

    def get_all_connections(self) -> List[Dict[str, Any]]:
        """Get all connections."""
        cursor = self.conn.execute("SELECT * FROM connections ORDER BY name")
        return [_row_to_dict(row) for row in cursor.fetchall()]

    def get_connection(self, connection_id: str) -> Optional[Dict[str, Any]]:
        """Get a connection by ID."""
        cursor = self.conn.execute(
            "SELECT * FROM connections WHERE id = ?", (connection_id,)
        )
        row = cursor.fetchone()
        return _row_to_dict(row) if row else None

    def add_connection(
        self,
        connection_id: str,
        name: str,
        account_type: Optional[str] = None,
        is_on_budget: bool = True,
        display_name: Optional[str] = None,
        current_balance: Any = 0
    ) -> str:
        """Add a connection, returns its ID."""
        try:
            self.conn.execute(
                """INSERT INTO connections
                   (id, name, display_name, current_balance, is_on_budget, account_type)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (connection_id, name, display_name, _to_money_str(current_balance),
                 int(is_on_budget), account_type)
            )
        except sqlite3.IntegrityError:
            raise ValidationError(f"Connection '{connection_id}' already exists")
        self._commit()
        return connection_id

    def update_connection(self, connection_id: str, **kwargs) -> bool:
        """Update a connection's fields."""
        allowed = {"name", "display_name", "is_on_budget", "account_type", "current_balance"}
        updates = {k: v for k, v in kwargs.items() if k in allowed}
        if not updates:
            return False
        if "current_balance" in updates:
            updates["current_balance"] = _to_money_str(updates["current_balance"])
        if "is_on_budget" in updates:
            updates["is_on_budget"] = int(updates["is_on_budget"])

        set_clause = ", ".join(f"{k} = ?" for k in updates)
        cursor = self.conn.execute(
            f"UPDATE connections SET {set_clause} WHERE id = ?",
            (*updates.values(), connection_id)
        )
        self._commit()
        return cursor.rowcount > 0

    def upsert_connection(
        self,
        connection_id: str,
        name: str,
        current_balance: Any,
        synced_at: Optional[datetime] = None
    ) -> bool:
        """Insert or refresh a synced connection, preserving user settings.

        Returns:
            True if the connection was newly created
        """
        synced = (synced_at or datetime.now()).isoformat(timespec="seconds")
        cursor = self.conn.execute(
            """UPDATE connections
               SET name = ?, current_balance = ?, last_synced_at = ?
               WHERE id = ?""",
            (name, _to_money_str(current_balance), synced, connection_id)
        )
        created = cursor.rowcount == 0
        if created:
            self.conn.execute(
                """INSERT INTO connections
                   (id, name, current_balance, is_on_budget, last_synced_at)
                   VALUES (?, ?, ?, 1, ?)""",
                (connection_id, name, _to_money_str(current_balance), synced)
            )
        self._commit()
        return created

    def delete_connection(self, connection_id: str) -> bool:
        """Delete a connection and (by cascade) its transactions."""
        cursor = self.conn.execute("DELETE FROM connections WHERE id = ?", (connection_id,))
        self._commit()
        return cursor.rowcount > 0

    def ensure_manual_connection(self) -> str:
        """Create the synthetic on-budget "Manual" connection if missing."""
        self.conn.execute(
            """INSERT OR IGNORE INTO connections
               (id, name, display_name, current_balance, is_on_budget)
               VALUES (?, ?, ?, '0.00', 1)""",
            (MANUAL_CONNECTION_ID, MANUAL_CONNECTION_NAME, MANUAL_CONNECTION_NAME)
        )
        self._commit()
        return MANUAL_CONNECTION_ID

    # === Transaction Methods ===

    def add_transaction(
        self,
        connection_id: str,
        date: str,
        name: str,
        amount: Any,
        category_type: Optional[str] = None,
        category_id: Optional[str] = None,
        income_month: Optional[str] = None,
        txn_id: Optional[str] = None
    ) -> str:
        """Add a transaction, returns its ID."""
        txn_id = txn_id or new_id()
        self.conn.execute(
            """INSERT INTO transactions
               (id, connection_id, date, name, amount, category_type, category_id,
                income_month, is_split)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)""",
            (txn_id, connection_id, date, name, _to_money_str(amount),
             category_type, category_id, income_month)
        )
        self._commit()
        return txn_id

    def add_transaction_if_absent(
        self,
        txn_id: str,
        connection_id: str,
        date: str,
        name: str,
        amount: Any
    ) -> bool:
        """Insert an uncategorized transaction unless its ID already exists.

        Returns:
            True if a row was inserted, False for a duplicate
        """
        cursor = self.conn.execute(
            """INSERT OR IGNORE INTO transactions
               (id, connection_id, date, name, amount, category_type, is_split)
               VALUES (?, ?, ?, ?, ?, ?, 0)""",
            (txn_id, connection_id, date, name, _to_money_str(amount), UNCATEGORIZED)
        )
        self._commit()
        return cursor.rowcount > 0

    def get_transaction(self, txn_id: str) -> Optional[Dict[str, Any]]:
        """Get a transaction by ID, with its splits."""
        cursor = self.conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (txn_id,)
        )
        row = cursor.fetchone()
        if not row:
            return None
        txn = _row_to_dict(row)
        txn["splits"] = self.get_transaction_splits(txn_id)
        return txn

    def get_transaction_splits(self, txn_id: str) -> List[Dict[str, Any]]:
        """Get all splits for a transaction."""
        cursor = self.conn.execute(
            "SELECT * FROM transaction_splits WHERE transaction_id = ? ORDER BY rowid",
            (txn_id,)
        )
        return [_row_to_dict(row) for row in cursor.fetchall()]

    def _attach_splits(self, txns: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Load splits for a batch of transactions in one query."""
        by_id = {t["id"]: t for t in txns}
        for t in txns:
            t["splits"] = []
        ids = list(by_id)
        # Stay under SQLite's bound-parameter limit
        for i in range(0, len(ids), 500):
            chunk = ids[i:i + 500]
            placeholders = ",".join("?" * len(chunk))
            cursor = self.conn.execute(
                f"""SELECT * FROM transaction_splits
                    WHERE transaction_id IN ({placeholders})
                    ORDER BY rowid""",
                chunk
            )
            for row in cursor.fetchall():
                split = _row_to_dict(row)
                by_id[split["transaction_id"]]["splits"].append(split)
        return txns

    def get_connection_transactions(self, connection_id: str) -> List[Dict[str, Any]]:
        """All transactions for one connection, newest first."""
        cursor = self.conn.execute(
            """SELECT * FROM transactions WHERE connection_id = ?
               ORDER BY date DESC, rowid DESC""",
            (connection_id,)
        )
        return self._attach_splits([_row_to_dict(row) for row in cursor.fetchall()])

    def get_on_budget_transactions(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Transactions on on-budget connections, with splits, newest first.

        Args:
            start_date: inclusive ISO date
            end_date: exclusive ISO date
        """
        query = """
            SELECT t.* FROM transactions t
            JOIN connections c ON c.id = t.connection_id
            WHERE c.is_on_budget = 1
        """
        params: List[Any] = []
        if start_date:
            query += " AND t.date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND t.date < ?"
            params.append(end_date)
        query += " ORDER BY t.date DESC, t.rowid DESC"

        cursor = self.conn.execute(query, params)
        return self._attach_splits([_row_to_dict(row) for row in cursor.fetchall()])

    def update_transaction_category(
        self,
        txn_id: str,
        category_type: Optional[str],
        category_id: Optional[str] = None,
        income_month: Optional[str] = None
    ) -> bool:
        """Update a transaction's category columns."""
        cursor = self.conn.execute(
            """UPDATE transactions
               SET category_type = ?, category_id = ?, income_month = ?
               WHERE id = ?""",
            (category_type, category_id, income_month, txn_id)
        )
        self._commit()
        return cursor.rowcount > 0

    def replace_transaction_splits(self, txn_id: str, splits: Iterable[Dict[str, Any]]) -> int:
        """Replace a transaction's splits and mark it split.

        Each split dict carries amount, date and optionally id, label,
        category_type, category_id and income_month. Amounts are stored as
        magnitudes. Callers validate totals; run inside transaction() so the
        delete and inserts land together.
        """
        self.conn.execute("DELETE FROM transaction_splits WHERE transaction_id = ?", (txn_id,))
        self.conn.execute(
            """UPDATE transactions
               SET is_split = 1, category_type = NULL, category_id = NULL, income_month = NULL
               WHERE id = ?""",
            (txn_id,)
        )
        count = 0
        for split in splits:
            self.conn.execute(
                """INSERT INTO transaction_splits
                   (id, transaction_id, label, amount, date, category_type, category_id, income_month)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (split.get("id") or new_id(), txn_id, split.get("label"),
                 _to_money_str(abs(to_money(split["amount"]))), split["date"],
                 split.get("category_type"), split.get("category_id"), split.get("income_month"))
            )
            count += 1
        self._commit()
        return count

    def clear_transaction_splits(self, txn_id: str) -> int:
        """Remove all splits and reset the parent to uncategorized."""
        cursor = self.conn.execute("DELETE FROM transaction_splits WHERE transaction_id = ?", (txn_id,))
        deleted = cursor.rowcount
        self.conn.execute(
            """UPDATE transactions
               SET is_split = 0, category_type = ?, category_id = NULL, income_month = NULL
               WHERE id = ?""",
            (UNCATEGORIZED, txn_id)
        )
        self._commit()
        return deleted

    def delete_split(self, split_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM transaction_splits WHERE id = ?", (split_id,))
        self._commit()
        return cursor.rowcount > 0

    # === Bill Methods ===

    def list_bills_for_month(self, month: str) -> List[Dict[str, Any]]:
        """Bills belonging to a "MM/YYYY" month, in insertion order."""
        cursor = self.conn.execute(
            "SELECT * FROM bills WHERE month = ? ORDER BY rowid", (month,)
        )
        return [_row_to_dict(row) for row in cursor.fetchall()]

    def get_bill(self, bill_id: str) -> Optional[Dict[str, Any]]:
        cursor = self.conn.execute("SELECT * FROM bills WHERE id = ?", (bill_id,))
        row = cursor.fetchone()
        return _row_to_dict(row) if row else None

    def add_bill(
        self,
        name: str,
        expected_amount: Any,
        month: str,
        bill_id: Optional[str] = None
    ) -> str:
        """Add a bill, returns its ID."""
        bill_id = bill_id or new_id()
        self.conn.execute(
            "INSERT INTO bills (id, name, expected_amount, month) VALUES (?, ?, ?, ?)",
            (bill_id, name, _to_money_str(expected_amount), month)
        )
        self._commit()
        return bill_id

    def update_bill(
        self,
        bill_id: str,
        name: Optional[str] = None,
        expected_amount: Any = None
    ) -> bool:
        """Update a bill's name and/or expected amount."""
        updates = {}
        if name is not None:
            updates["name"] = name
        if expected_amount is not None:
            updates["expected_amount"] = _to_money_str(expected_amount)
        if not updates:
            return False

        set_clause = ", ".join(f"{k} = ?" for k in updates)
        cursor = self.conn.execute(
            f"UPDATE bills SET {set_clause} WHERE id = ?",
            (*updates.values(), bill_id)
        )
        self._commit()
        return cursor.rowcount > 0

    def update_bill_amount(self, bill_id: str, expected_amount: Any) -> bool:
        return self.update_bill(bill_id, expected_amount=expected_amount)

    def delete_bill(self, bill_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM bills WHERE id = ?", (bill_id,))
        self._commit()
        return cursor.rowcount > 0

    # === Fund Methods ===

    def get_all_funds(self) -> List[Dict[str, Any]]:
        """Get all funds in creation order."""
        cursor = self.conn.execute("SELECT * FROM funds ORDER BY rowid")
        return [_row_to_dict(row) for row in cursor.fetchall()]

    def get_fund(self, fund_id: str) -> Optional[Dict[str, Any]]:
        cursor = self.conn.execute("SELECT * FROM funds WHERE id = ?", (fund_id,))
        row = cursor.fetchone()
        return _row_to_dict(row) if row else None

    def add_fund(self, fund_id: str, name: str) -> str:
        try:
            self.conn.execute("INSERT INTO funds (id, name) VALUES (?, ?)", (fund_id, name))
        except sqlite3.IntegrityError:
            raise ValidationError(f"Fund '{fund_id}' already exists")
        self._commit()
        return fund_id

    def delete_fund(self, fund_id: str) -> bool:
        """Delete a fund with its allocations and settings."""
        cursor = self.conn.execute("DELETE FROM funds WHERE id = ?", (fund_id,))
        self._commit()
        return cursor.rowcount > 0

    def get_fund_settings(self) -> List[Dict[str, Any]]:
        cursor = self.conn.execute("SELECT * FROM fund_settings ORDER BY rowid")
        return [_row_to_dict(row) for row in cursor.fetchall()]

    def upsert_fund_settings(
        self,
        fund_id: str,
        display_name: str,
        position: str,
        is_visible: bool = True,
        override_amount: Any = None
    ) -> None:
        """Create or replace the display settings for a fund."""
        override = _to_money_str(override_amount)
        cursor = self.conn.execute(
            """UPDATE fund_settings
               SET display_name = ?, position = ?, is_visible = ?, override_amount = ?
               WHERE fund_id = ?""",
            (display_name, position, int(is_visible), override, fund_id)
        )
        if cursor.rowcount == 0:
            self.conn.execute(
                """INSERT INTO fund_settings
                   (id, fund_id, display_name, position, is_visible, override_amount)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (f"settings-{fund_id}", fund_id, display_name, position, int(is_visible), override)
            )
        self._commit()

    def get_fund_allocations(self, month: Optional[str] = None) -> List[Dict[str, Any]]:
        if month:
            cursor = self.conn.execute(
                "SELECT * FROM fund_allocations WHERE month = ? ORDER BY rowid", (month,)
            )
        else:
            cursor = self.conn.execute("SELECT * FROM fund_allocations ORDER BY rowid")
        return [_row_to_dict(row) for row in cursor.fetchall()]

    def get_allocation_totals(self) -> Dict[str, Decimal]:
        """Sum of historical allocations per fund, in exact decimal."""
        totals: Dict[str, Decimal] = {}
        for alloc in self.get_fund_allocations():
            totals[alloc["fund_id"]] = totals.get(alloc["fund_id"], Decimal("0")) + alloc["amount"]
        return totals

    def add_fund_allocation(self, fund_id: str, month: str, amount: Any) -> str:
        alloc_id = new_id()
        self.conn.execute(
            "INSERT INTO fund_allocations (id, fund_id, month, amount) VALUES (?, ?, ?, ?)",
            (alloc_id, fund_id, month, _to_money_str(amount))
        )
        self._commit()
        return alloc_id

    # === Sealed Month Methods ===

    def is_month_sealed(self, month: str) -> bool:
        cursor = self.conn.execute(
            "SELECT 1 FROM sealed_months WHERE month = ? LIMIT 1", (month,)
        )
        return cursor.fetchone() is not None

    def get_sealed_months(self) -> List[Dict[str, Any]]:
        cursor = self.conn.execute("SELECT * FROM sealed_months ORDER BY sealed_at")
        return [_row_to_dict(row) for row in cursor.fetchall()]

    def add_sealed_month(self, month: str) -> str:
        """Record a month as sealed.

        Raises:
            MonthAlreadySealedError: if the month already has a seal row
        """
        seal_id = new_id()
        try:
            self.conn.execute(
                "INSERT INTO sealed_months (id, month) VALUES (?, ?)", (seal_id, month)
            )
        except sqlite3.IntegrityError:
            raise MonthAlreadySealedError()
        self._commit()
        return seal_id

    # === App Settings Methods ===

    def get_app_setting(self, key: str) -> Optional[str]:
        """Get an app setting value by key."""
        cursor = self.conn.execute(
            "SELECT value FROM app_settings WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def set_app_setting(self, key: str, value: str) -> None:
        """Insert or update an app setting."""
        cursor = self.conn.execute(
            "UPDATE app_settings SET value = ? WHERE key = ?",
            (str(value), key)
        )
        if cursor.rowcount == 0:
            # Insert if doesn't exist
            self.conn.execute(
                "INSERT INTO app_settings (id, key, value) VALUES (?, ?, ?)",
                (f"setting-{key}", key, str(value))
            )
        self._commit()

    def delete_app_setting(self, key: str) -> bool:
        cursor = self.conn.execute("DELETE FROM app_settings WHERE key = ?", (key,))
        self._commit()
        return cursor.rowcount > 0
