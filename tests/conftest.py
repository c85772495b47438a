"""
Pytest configuration and shared fixtures.
"""
from datetime import datetime
from pathlib import Path

import pytest


@pytest.fixture
def temp_db_path(tmp_path) -> Path:
    """Path to a fresh SQLite database file."""
    return tmp_path / "test.db"


@pytest.fixture
def store(temp_db_path):
    """An open SQLiteStore on a temporary database."""
    from household_budget.db.sqlite_store import SQLiteStore

    with SQLiteStore(temp_db_path) as s:
        yield s


@pytest.fixture
def on_budget(store) -> str:
    """An on-budget checking connection."""
    return store.add_connection("chk", "Checking", account_type="checking")


@pytest.fixture
def off_budget(store) -> str:
    """An off-budget brokerage connection."""
    return store.add_connection("brk", "Brokerage", account_type="investment", is_on_budget=False)


@pytest.fixture
def household_funds(store) -> dict:
    """The four household funds, keyed by name."""
    ids = {}
    for name in ("Madison", "Josh", "House", "Travel"):
        fund_id = f"fund-{name.lower()}"
        store.add_fund(fund_id, name)
        ids[name] = fund_id
    return ids


@pytest.fixture
def april_2026():
    """Clock fixed after the end of March 2026."""
    return lambda: datetime(2026, 4, 2, 9, 30)
