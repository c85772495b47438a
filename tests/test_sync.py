"""Tests for bank sync."""
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from household_budget.core.settings import SettingsStore
from household_budget.errors import ValidationError
from household_budget.ingestion.simplefin import AccountSet
from household_budget.ingestion.sync import BankSync, posted_date


PAYLOAD = {
    "errors": ["Bank of Example: re-authentication required"],
    "accounts": [
        {
            "id": "ACT-1",
            "name": "Joint Checking",
            "balance": "2100.00",
            "transactions": [
                # 2026-03-02T00:00:00Z
                {"id": "T1", "posted": 1772409600, "amount": "-4.50", "description": "Coffee"},
                {"id": "T2", "posted": 1772409600, "amount": "-20.00", "description": "Gas", "pending": True},
            ],
        },
        {
            "id": "ACT-2",
            "name": "Visa",
            "balance": "-340.12",
            "transactions": [
                {"id": "T1", "posted": 1772496000, "amount": "-340.12", "description": "Airline"},
            ],
        },
    ],
}


@pytest.fixture
def client():
    client = MagicMock()
    client.fetch_accounts.return_value = AccountSet.from_json(PAYLOAD)
    return client


@pytest.fixture
def connected(store):
    SettingsStore(store).set_simplefin_access_url("https://u:p@bridge.example/simplefin")
    return store


class TestBankSync:

    def test_requires_access_url(self, store, client):
        with pytest.raises(ValidationError, match="SimpleFin not connected"):
            BankSync(store, client).sync()
        client.fetch_accounts.assert_not_called()

    def test_imports_posted_transactions(self, connected, client):
        now = datetime(2026, 3, 10, 12, 0)
        result = BankSync(connected, client, clock=lambda: now).sync()

        assert result == {
            "accounts": 2,
            "transactions": 2,
            "errors": ["Bank of Example: re-authentication required"],
        }
        args, _ = client.fetch_accounts.call_args
        assert args[1] == datetime(2025, 12, 10, 12, 0)

        coffee = connected.get_transaction("ACT-1-T1")
        assert coffee["date"] == "2026-03-02"
        assert coffee["amount"] == Decimal("-4.50")
        assert coffee["category_type"] == "uncategorized"
        assert connected.get_transaction("ACT-1-T2") is None

        visa = connected.get_connection("ACT-2")
        assert visa["current_balance"] == Decimal("-340.12")
        assert visa["is_on_budget"] is True

    def test_sync_is_idempotent(self, connected, client):
        sync = BankSync(connected, client)
        sync.sync()
        connected.update_transaction_category("ACT-1-T1", "everything_else")

        second = sync.sync()

        assert second["transactions"] == 0
        assert len(connected.get_on_budget_transactions()) == 2
        assert connected.get_transaction("ACT-1-T1")["category_type"] == "everything_else"

    def test_resync_keeps_on_budget_choice(self, connected, client):
        sync = BankSync(connected, client)
        sync.sync()
        connected.update_connection("ACT-2", is_on_budget=False)

        sync.sync()

        assert connected.get_connection("ACT-2")["is_on_budget"] is False

    def test_posted_date_is_utc(self):
        # 2026-03-01T23:30:00Z
        assert posted_date(1772407800) == "2026-03-01"
