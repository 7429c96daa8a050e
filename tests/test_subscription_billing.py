"""
Tests for subscription billing arithmetic
"""
import pytest
from datetime import date
from fractions import Fraction
from unittest.mock import Mock

from creator_commerce.exceptions import ValidationFailedError
from creator_commerce.services.subscription_service import (
    billing_interval_days,
    load_frequency_table,
    monthly_recurring_cents,
    next_billing_date,
)


class TestFrequencyTable:
    """Test the billing frequency table"""

    def test_all_frequencies_loaded(self):
        table = load_frequency_table()
        assert set(table) == {
            "weekly", "biweekly", "monthly", "bimonthly", "quarterly", "semiannually", "annually",
        }

    def test_monthly_factors_are_exact(self):
        table = load_frequency_table()
        assert table["quarterly"]["monthly_factor"] == Fraction(1, 3)
        assert table["weekly"]["monthly_factor"] == Fraction("4.33")


class TestNextBillingDate:
    """Test next billing date computation"""

    @pytest.mark.parametrize(
        "frequency,expected",
        [
            ("weekly", date(2025, 1, 17)),
            ("biweekly", date(2025, 1, 24)),
            ("monthly", date(2025, 2, 9)),
            ("quarterly", date(2025, 4, 10)),
            ("annually", date(2026, 1, 10)),
        ],
    )
    def test_one_interval(self, frequency, expected):
        assert next_billing_date(date(2025, 1, 10), frequency) == expected

    def test_interval_multiplies_period(self):
        assert billing_interval_days("weekly", 3) == 21
        assert next_billing_date(date(2025, 1, 10), "weekly", 3) == date(2025, 1, 31)

    def test_crosses_leap_day(self):
        """Monthly is a fixed 30 days, not a calendar month"""
        assert next_billing_date(date(2024, 1, 31), "monthly") == date(2024, 3, 1)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            next_billing_date(date(2025, 1, 10), "fortnightly")
        assert "allowed" in exc_info.value.details

    def test_interval_below_one_rejected(self):
        with pytest.raises(ValidationFailedError):
            billing_interval_days("monthly", 0)


class TestMonthlyRecurring:
    """Test MRR contribution of a single subscription"""

    def _subscription(self, **overrides):
        sub = Mock()
        sub.price_cents = 1000
        sub.discount_cents = 0
        sub.quantity = 1
        sub.frequency = "monthly"
        sub.frequency_interval = 1
        for key, value in overrides.items():
            setattr(sub, key, value)
        return sub

    def test_monthly(self):
        assert monthly_recurring_cents(self._subscription(quantity=2)) == 2000

    def test_weekly_uses_weeks_per_month(self):
        assert monthly_recurring_cents(self._subscription(frequency="weekly")) == 4330

    def test_annual_spread_over_twelve_months(self):
        assert monthly_recurring_cents(self._subscription(price_cents=1200, frequency="annually")) == 100

    def test_discount_and_interval(self):
        sub = self._subscription(price_cents=1500, discount_cents=500, frequency_interval=2)
        assert monthly_recurring_cents(sub) == 500
