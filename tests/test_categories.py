"""Tests for the category resolver."""
import pytest

from household_budget.core.categories import (
    BillCategory,
    EverythingElse,
    FundCategory,
    Ignore,
    IncomeCategory,
    Uncategorized,
    display_token,
    format_category,
    from_columns,
    parse_category,
    target_id,
    to_columns,
)


class TestParseCategory:

    def test_keywords(self):
        assert parse_category("everything_else") == EverythingElse()
        assert parse_category("ignore") == Ignore()
        assert parse_category("uncategorized") == Uncategorized()
        assert parse_category("income", "03/2026") == IncomeCategory(month="03/2026")

    def test_fund_reference(self):
        assert parse_category("fund:fund-travel") == FundCategory(fund_id="fund-travel")

    def test_anything_else_is_a_bill(self):
        assert parse_category("6f1c2a") == BillCategory(bill_id="6f1c2a")
        assert parse_category("") == BillCategory(bill_id="")

    @pytest.mark.parametrize("token", ["fund:fund-travel", "income", "everything_else", "ignore", "uncategorized", "bill-42"])
    def test_format_inverts_parse(self, token):
        assert format_category(parse_category(token)) == token


class TestStorageColumns:

    def test_fund_columns(self):
        assert to_columns(parse_category("fund:fund-travel")) == ("fund", "fund-travel", None)
        assert target_id(FundCategory("fund-travel")) == "fund-travel"

    def test_income_month_only_kept_for_income(self):
        assert to_columns(IncomeCategory("03/2026")) == ("income", None, "03/2026")
        assert to_columns(parse_category("everything_else", "03/2026")) == ("everything_else", None, None)

    def test_from_columns_round_trip(self):
        assert from_columns("bill", "b1") == BillCategory("b1")
        assert from_columns("income", None, "02/2026") == IncomeCategory("02/2026")
        assert from_columns("ignore") == Ignore()

    def test_null_kind_is_unassigned(self):
        assert from_columns(None) is None
        assert display_token(None, None) is None

    def test_display_token(self):
        assert display_token("fund", "fund-house") == "fund:fund-house"
        assert display_token("bill", "b1") == "b1"
        assert display_token("uncategorized", None) == "uncategorized"
