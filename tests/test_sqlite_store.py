"""Tests for SQLite store."""
import pytest
from decimal import Decimal
from pathlib import Path


class TestSQLiteStore:
    """Test cases for SQLiteStore class."""

    def test_init_creates_tables(self, temp_db_path: Path):
        """Store should create all required tables on initialization."""
        from household_budget.db.sqlite_store import SQLiteStore

        store = SQLiteStore(temp_db_path)

        tables = store.get_tables()
        for table in ("connections", "transactions", "transaction_splits", "bills",
                      "funds", "fund_allocations", "sealed_months", "fund_settings", "app_settings"):
            assert table in tables
        store.close()

    def test_context_manager(self, temp_db_path: Path):
        """Store should work as context manager."""
        from household_budget.db.sqlite_store import SQLiteStore

        with SQLiteStore(temp_db_path) as store:
            assert "bills" in store.get_tables()

    def test_money_round_trips_as_decimal(self, store, on_budget):
        txn_id = store.add_transaction(on_budget, "2026-03-04", "Grocer", -45.1)

        txn = store.get_transaction(txn_id)
        assert txn["amount"] == Decimal("-45.10")
        assert txn["is_split"] is False
        assert txn["splits"] == []

    def test_invalid_amount_rejected(self, store, on_budget):
        from household_budget.errors import ValidationError

        with pytest.raises(ValidationError, match="Invalid amount"):
            store.add_transaction(on_budget, "2026-03-04", "Grocer", "abc")


class TestConnections:

    def test_duplicate_connection_rejected(self, store, on_budget):
        from household_budget.errors import ValidationError

        with pytest.raises(ValidationError, match="already exists"):
            store.add_connection(on_budget, "Checking again")

    def test_upsert_preserves_user_settings(self, store, off_budget):
        created = store.upsert_connection(off_budget, "Brokerage (renamed)", "1500.25")

        assert created is False
        conn = store.get_connection(off_budget)
        assert conn["name"] == "Brokerage (renamed)"
        assert conn["current_balance"] == Decimal("1500.25")
        assert conn["is_on_budget"] is False
        assert conn["last_synced_at"] is not None

    def test_upsert_creates_on_budget(self, store):
        assert store.upsert_connection("acct-9", "Savings", 10) is True
        assert store.get_connection("acct-9")["is_on_budget"] is True

    def test_delete_connection_cascades(self, store, on_budget):
        txn_id = store.add_transaction(on_budget, "2026-03-04", "Grocer", -10)

        assert store.delete_connection(on_budget) is True
        assert store.get_transaction(txn_id) is None

    def test_manual_connection_is_idempotent(self, store):
        assert store.ensure_manual_connection() == "manual"
        assert store.ensure_manual_connection() == "manual"
        manual = [c for c in store.get_all_connections() if c["id"] == "manual"]
        assert len(manual) == 1
        assert manual[0]["is_on_budget"] is True


class TestTransactions:

    def test_add_if_absent_skips_duplicates(self, store, on_budget):
        assert store.add_transaction_if_absent("chk-1", on_budget, "2026-03-01", "Coffee", "-4.50") is True
        assert store.add_transaction_if_absent("chk-1", on_budget, "2026-03-01", "Coffee", "-4.50") is False

        txn = store.get_transaction("chk-1")
        assert txn["category_type"] == "uncategorized"

    def test_on_budget_filter_and_range(self, store, on_budget, off_budget):
        store.add_transaction(on_budget, "2026-02-28", "Feb", -1)
        store.add_transaction(on_budget, "2026-03-01", "Mar first", -2)
        store.add_transaction(on_budget, "2026-03-31", "Mar last", -3)
        store.add_transaction(on_budget, "2026-04-01", "Apr", -4)
        store.add_transaction(off_budget, "2026-03-15", "Off budget", -5)

        txns = store.get_on_budget_transactions("2026-03-01", "2026-04-01")

        assert [t["name"] for t in txns] == ["Mar last", "Mar first"]

    def test_replace_splits_marks_parent(self, store, on_budget):
        txn_id = store.add_transaction(on_budget, "2026-03-04", "Costco", -100, category_type="everything_else")

        with store.transaction():
            count = store.replace_transaction_splits(txn_id, [
                {"amount": -60, "date": "2026-03-04", "category_type": "fund", "category_id": "fund-house"},
                {"amount": 40, "date": "2026-03-04", "category_type": "everything_else"},
            ])

        txn = store.get_transaction(txn_id)
        assert count == 2
        assert txn["is_split"] is True
        assert txn["category_type"] is None
        assert [s["amount"] for s in txn["splits"]] == [Decimal("60.00"), Decimal("40.00")]

    def test_clear_splits_resets_to_uncategorized(self, store, on_budget):
        txn_id = store.add_transaction(on_budget, "2026-03-04", "Costco", -100)
        store.replace_transaction_splits(txn_id, [
            {"amount": 60, "date": "2026-03-04"},
            {"amount": 40, "date": "2026-03-04"},
        ])

        assert store.clear_transaction_splits(txn_id) == 2
        txn = store.get_transaction(txn_id)
        assert txn["is_split"] is False
        assert txn["category_type"] == "uncategorized"
        assert txn["splits"] == []


class TestTransactionBlock:

    def test_rolls_back_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_bill("Rent", 1500, "03/2026")
                raise RuntimeError("boom")

        assert store.list_bills_for_month("03/2026") == []

    def test_nested_blocks_commit_once(self, store):
        with store.transaction():
            store.add_bill("Rent", 1500, "03/2026")
            with store.transaction():
                store.add_bill("Internet", 80, "03/2026")

        assert len(store.list_bills_for_month("03/2026")) == 2


class TestBills:

    def test_bills_are_partitioned_by_month(self, store):
        store.add_bill("Rent", 1500, "03/2026")
        store.add_bill("Rent", 1550, "04/2026")

        assert [b["expected_amount"] for b in store.list_bills_for_month("03/2026")] == [Decimal("1500.00")]

    def test_update_bill_amount(self, store):
        bill_id = store.add_bill("Internet", 80, "03/2026")

        assert store.update_bill_amount(bill_id, "85.5") is True
        bill = store.get_bill(bill_id)
        assert bill["expected_amount"] == Decimal("85.50")
        assert bill["name"] == "Internet"

    def test_delete_missing_bill(self, store):
        assert store.delete_bill("nope") is False


class TestFundsAndSettings:

    def test_delete_fund_cascades(self, store, household_funds):
        house = household_funds["House"]
        store.add_fund_allocation(house, "02/2026", 200)
        store.upsert_fund_settings(house, "Home", "left")

        store.delete_fund(house)

        assert store.get_fund_allocations() == []
        assert store.get_fund_settings() == []

    def test_upsert_fund_settings_updates_in_place(self, store, household_funds):
        travel = household_funds["Travel"]
        store.upsert_fund_settings(travel, "Trips", "left")
        store.upsert_fund_settings(travel, "Vacation", "right", is_visible=False, override_amount="250")

        settings = store.get_fund_settings()
        assert len(settings) == 1
        assert settings[0]["display_name"] == "Vacation"
        assert settings[0]["is_visible"] is False
        assert settings[0]["override_amount"] == Decimal("250.00")

    def test_allocation_totals(self, store, household_funds):
        house = household_funds["House"]
        store.add_fund_allocation(house, "01/2026", "200")
        store.add_fund_allocation(house, "02/2026", "150.50")

        assert store.get_allocation_totals() == {house: Decimal("350.50")}

    def test_sealed_month_unique(self, store):
        from household_budget.errors import MonthAlreadySealedError

        store.add_sealed_month("03/2026")
        assert store.is_month_sealed("03/2026")
        with pytest.raises(MonthAlreadySealedError):
            store.add_sealed_month("03/2026")

    def test_app_settings(self, store):
        assert store.get_app_setting("savings_target") is None
        store.set_app_setting("savings_target", "250")
        store.set_app_setting("savings_target", "275")
        assert store.get_app_setting("savings_target") == "275"
        assert store.delete_app_setting("savings_target") is True
        assert store.delete_app_setting("savings_target") is False
