"""Tests for the growth projection engine."""

import pytest
from datetime import date
from decimal import Decimal

from finance_engine.engines.growth import calculate, projection_length
from finance_engine.engines.money import add_months, months_between
from finance_engine.exceptions import EngineError, HorizonTooLarge


class TestMonthArithmetic:
    """Tests for calendar month helpers."""

    def test_months_between_whole_months(self):
        """Test counting complete months."""
        assert months_between(date(2024, 1, 1), date(2025, 1, 1)) == 12
        assert months_between(date(2024, 1, 15), date(2024, 3, 14)) == 1
        assert months_between(date(2024, 1, 15), date(2024, 1, 15)) == 0

    def test_months_between_reversed(self):
        """Test that an end before the start yields -1."""
        assert months_between(date(2024, 2, 1), date(2024, 1, 1)) == -1

    def test_add_months_clamps_day(self):
        """Test that month ends clamp to shorter months."""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 1, 31), 2) == date(2024, 3, 31)

    def test_same_day_projection_has_one_record(self):
        """Test that start == target yields a single month."""
        assert projection_length(date(2024, 6, 1), date(2024, 6, 1)) == 1


class TestCalculate:
    """Tests for month-by-month projection."""

    def setup_method(self):
        self.start = date(2024, 1, 1)

    def test_flat_projection(self):
        """Test that zero contribution and zero return keep the balance flat."""
        result = calculate(Decimal("1000"), Decimal("0"), Decimal("0"), self.start, date(2025, 1, 1))
        assert len(result.monthly_breakdown) == 13
        assert all(m.balance == Decimal("1000.00") for m in result.monthly_breakdown)
        assert result.final_balance == Decimal("1000.00")

    def test_linear_growth_with_zero_return(self):
        """Test that contributions alone grow the balance linearly."""
        result = calculate(Decimal("1000"), Decimal("100"), Decimal("0"), self.start, date(2025, 1, 1))
        assert result.final_balance == Decimal("2300.00")
        assert result.monthly_breakdown[0].balance == Decimal("1100.00")

    def test_compounding(self):
        """Test monthly compounding at 12% a year."""
        result = calculate(Decimal("1000"), Decimal("0"), Decimal("12"), self.start, date(2024, 2, 1))
        balances = [m.balance for m in result.monthly_breakdown]
        assert balances == [Decimal("1010.00"), Decimal("1020.10")]
        assert result.monthly_breakdown[1].interest == Decimal("10.10")

    def test_contribution_added_before_interest(self):
        """Test that interest accrues on the contribution of the same month."""
        result = calculate(Decimal("1000"), Decimal("100"), Decimal("12"), self.start, date(2024, 2, 1))
        first, second = result.monthly_breakdown
        assert first.balance == Decimal("1111.00")
        assert first.interest == Decimal("11.00")
        assert first.contribution == Decimal("100.00")
        assert second.balance == Decimal("1223.11")

    def test_negative_return(self):
        """Test that a negative rate shrinks the balance."""
        result = calculate(Decimal("1000"), Decimal("0"), Decimal("-12"), self.start, date(2024, 2, 1))
        assert [m.balance for m in result.monthly_breakdown] == [
            Decimal("990.00"),
            Decimal("980.10"),
        ]

    def test_target_before_start_is_empty(self):
        """Test that a past target returns the input balance untouched."""
        result = calculate(Decimal("1234.56"), Decimal("100"), Decimal("5"), self.start, date(2023, 12, 31))
        assert result.monthly_breakdown == []
        assert result.final_balance == Decimal("1234.56")

    def test_final_balance_is_last_record(self):
        """Test that the headline figure matches the last record."""
        result = calculate(Decimal("250.75"), Decimal("33.33"), Decimal("4.5"), self.start, date(2034, 7, 19))
        assert result.final_balance == result.monthly_breakdown[-1].balance
        assert len(result.monthly_breakdown) == months_between(self.start, date(2034, 7, 19)) + 1

    def test_record_dates_follow_start_day(self):
        """Test that record dates step from the start date with day clamping."""
        result = calculate(Decimal("0"), Decimal("10"), Decimal("0"), date(2024, 1, 31), date(2024, 3, 31))
        assert [m.date for m in result.monthly_breakdown] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]

    def test_partial_last_month_not_counted(self):
        """Test that a target short of a whole month drops that month."""
        result = calculate(Decimal("0"), Decimal("10"), Decimal("0"), date(2024, 1, 31), date(2024, 3, 30))
        assert len(result.monthly_breakdown) == 2

    def test_horizon_cap(self):
        """Test that projections longer than the cap are refused."""
        within = calculate(Decimal("1"), Decimal("0"), Decimal("0"), self.start, date(2024, 12, 1), max_years=1)
        assert len(within.monthly_breakdown) == 12

        with pytest.raises(HorizonTooLarge) as exc_info:
            calculate(Decimal("1"), Decimal("0"), Decimal("0"), self.start, date(2025, 1, 1), max_years=1)
        assert exc_info.value.months == 13
        assert exc_info.value.max_months == 12
        assert isinstance(exc_info.value, EngineError)

    def test_default_horizon_cap(self):
        """Test the configured default cap of 100 years."""
        with pytest.raises(HorizonTooLarge):
            calculate(Decimal("1"), Decimal("0"), Decimal("0"), self.start, date(2124, 1, 1))

    def test_default_cap_follows_settings(self, monkeypatch):
        """Test that the default cap comes from the configured horizon in months."""
        monkeypatch.setenv("ENGINE_MAX_PROJECTION_YEARS", "1")
        with pytest.raises(HorizonTooLarge) as exc_info:
            calculate(Decimal("1"), Decimal("0"), Decimal("0"), self.start, date(2025, 1, 1))
        assert exc_info.value.max_months == 12


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
