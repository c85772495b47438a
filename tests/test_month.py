"""Tests for the Month value type."""
from datetime import date, datetime

import pytest

from household_budget.core.month import Month
from household_budget.errors import ValidationError


class TestMonthParse:

    def test_parse_and_render(self):
        month = Month.parse("03/2026")
        assert month.year == 2026
        assert month.month == 3
        assert str(month) == "03/2026"

    @pytest.mark.parametrize("value", ["3/2026", "2026-03", "13/2026", "00/2026", "", None, "03/26"])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValidationError, match="Invalid month format. Use MM/YYYY"):
            Month.parse(value)

    @pytest.mark.parametrize("value", ["01/0000", "12/9999"])
    def test_rejects_years_without_a_date_range(self, value):
        with pytest.raises(ValidationError, match="Invalid month format"):
            Month.parse(value)

    def test_of_date_and_iso_string(self):
        assert Month.of(date(2025, 12, 31)) == Month(2025, 12)
        assert Month.of("2026-01-05") == Month(2026, 1)

    def test_ordering(self):
        assert Month(2025, 12) < Month(2026, 1) < Month(2026, 2)


class TestMonthRange:

    def test_december_rolls_into_next_year(self):
        """12/2025 covers [2025-12-01, 2026-01-01)."""
        assert Month.parse("12/2025").date_range() == ("2025-12-01", "2026-01-01")

    def test_contains_is_half_open(self):
        month = Month(2026, 3)
        assert month.contains("2026-03-01")
        assert month.contains("2026-03-31")
        assert not month.contains("2026-04-01")
        assert not month.contains("2026-02-28")

    def test_previous_and_next_cross_years(self):
        assert Month(2026, 1).previous() == Month(2025, 12)
        assert Month(2025, 12).next() == Month(2026, 1)

    def test_has_ended(self):
        march = Month(2026, 3)
        assert not march.has_ended(datetime(2026, 3, 31, 23, 59))
        assert march.has_ended(datetime(2026, 4, 1, 0, 0))
