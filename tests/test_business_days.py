"""
Tests for business day resolution
"""

import pytest
from datetime import date, datetime, timedelta

from credit_engine.business_days import CalendarResolver, next_business_date
from credit_engine.exceptions import SchedulingError, ValidationError
from credit_engine.frequency import PaymentFrequency


class TestCalendarResolver:
    """Test the per-frequency weekend policy and holiday skipping"""

    def setup_method(self):
        self.resolver = CalendarResolver(holidays=[date(2025, 1, 6), date(2025, 1, 7)])

    def test_business_day_passes_through(self):
        """Test a valid date resolves to itself"""
        assert self.resolver.next_business_date(date(2025, 1, 2), PaymentFrequency.DAILY) == date(2025, 1, 2)

    def test_sunday_never_valid(self):
        """Test Sunday is skipped for every frequency"""
        for frequency in PaymentFrequency:
            assert not self.resolver.is_business_day(date(2025, 1, 12), frequency)

    def test_saturday_policy_per_frequency(self):
        """Test Saturday is valid only for frequencies that collect on Saturdays"""
        saturday = date(2025, 1, 11)

        assert self.resolver.is_business_day(saturday, PaymentFrequency.WEEKLY)
        assert self.resolver.is_business_day(saturday, PaymentFrequency.SEMIMONTHLY)
        assert not self.resolver.is_business_day(saturday, PaymentFrequency.DAILY)
        assert not self.resolver.is_business_day(saturday, PaymentFrequency.BIWEEKLY_14)

    def test_weekend_and_holidays_chain(self):
        """Test resolution walks across a weekend into consecutive holidays"""
        resolved = self.resolver.next_business_date(date(2025, 1, 4), PaymentFrequency.DAILY)

        assert resolved == date(2025, 1, 8)

    def test_saturday_kept_for_weekly(self):
        """Test weekly collection resolves Saturday to itself"""
        resolved = self.resolver.next_business_date(date(2025, 1, 4), PaymentFrequency.WEEKLY)

        assert resolved == date(2025, 1, 4)

    def test_iteration_cap(self):
        """Test resolution fails loudly once the cap is exhausted"""
        resolver = CalendarResolver(
            holidays=[date(2025, 1, 1) + timedelta(days=i) for i in range(10)],
            max_iterations=5
        )

        with pytest.raises(SchedulingError, match="within 5 days"):
            resolver.next_business_date(date(2025, 1, 1), PaymentFrequency.WEEKLY)

    def test_invalid_iteration_cap(self):
        """Test a non-positive cap is rejected"""
        with pytest.raises(ValidationError):
            CalendarResolver(max_iterations=0)

    def test_rejects_datetime(self):
        """Test datetimes are rejected"""
        with pytest.raises(ValidationError):
            self.resolver.next_business_date(datetime(2025, 1, 2, 8, 0), PaymentFrequency.DAILY)

    def test_module_function(self):
        """Test the module level helper"""
        resolved = next_business_date(date(2025, 1, 5), {date(2025, 1, 6)}, PaymentFrequency.SEMIMONTHLY)

        assert resolved == date(2025, 1, 7)


class TestPaymentFrequency:
    """Test frequency constants"""

    def test_from_code(self):
        """Test looking frequencies up by stored code"""
        assert PaymentFrequency.from_code("biweekly_14") == PaymentFrequency.BIWEEKLY_14
        with pytest.raises(ValueError, match="Unknown payment frequency"):
            PaymentFrequency.from_code("monthly")

    def test_constants(self):
        """Test each member carries its scheduling constants"""
        assert PaymentFrequency.DAILY.periods_per_month == 20
        assert PaymentFrequency.WEEKLY.step_days == 7
        assert PaymentFrequency.BIWEEKLY_14.step_days == 14
        assert PaymentFrequency.SEMIMONTHLY.step_days is None
