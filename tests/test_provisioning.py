"""
Tests for delinquency buckets and loss provisioning
"""

import pytest
from decimal import Decimal
from datetime import date

from credit_engine.currency import Money, Currency
from credit_engine.exceptions import ValidationError
from credit_engine.frequency import PaymentFrequency
from credit_engine.loans import LoanTerms, generate_schedule
from credit_engine.provisioning import (
    DEFAULT_PROVISION_RULES, ProvisionBucket, ProvisionCategory,
    bucket_for, categorize, delinquency_category, validate_rule_table
)
from credit_engine.status import compute_status


class TestCategorize:
    """Test provision computation against the default table"""

    def test_provision_amount(self):
        """Test 45 late days on 8,000 falls in C at 20%"""
        result = categorize(45, Money(Decimal('8000.00'), Currency.NIO))

        assert result.category == ProvisionCategory.C
        assert result.bucket_label == "C (Real risk)"
        assert result.reserve_rate == Decimal('0.20')
        assert result.provision_amount == Money(Decimal('1600.00'), Currency.NIO)

    def test_bucket_boundaries(self):
        """Test half-open day ranges at every boundary"""
        expected = {
            0: ProvisionCategory.A, 15: ProvisionCategory.A,
            16: ProvisionCategory.B, 30: ProvisionCategory.B,
            31: ProvisionCategory.C, 60: ProvisionCategory.C,
            61: ProvisionCategory.D, 90: ProvisionCategory.D,
            91: ProvisionCategory.E, 5000: ProvisionCategory.E,
        }
        for late_days, category in expected.items():
            assert bucket_for(late_days).category == category

    def test_zero_balance(self):
        """Test a settled credit needs no provision"""
        result = categorize(120, Money(Decimal('0'), Currency.NIO))

        assert result.category == ProvisionCategory.E
        assert result.provision_amount.is_zero()

    def test_provision_rounding(self):
        """Test provision amounts round to the currency precision"""
        result = categorize(3, Money(Decimal('1234.56'), Currency.NIO))

        assert result.provision_amount == Money(Decimal('12.35'), Currency.NIO)

    def test_rejects_negative_late_days(self):
        """Test negative late days are rejected"""
        with pytest.raises(ValidationError, match="cannot be negative"):
            categorize(-1, Money(Decimal('100'), Currency.NIO))

    def test_rejects_negative_balance(self):
        """Test a negative balance is rejected"""
        with pytest.raises(ValidationError, match="cannot be negative"):
            categorize(1, Money(Decimal('-100'), Currency.NIO))

    def test_category_agreement(self):
        """Test the delinquency category always matches the provisioning category"""
        for late_days in range(0, 200):
            assert delinquency_category(late_days) == \
                categorize(late_days, Money(Decimal('100'), Currency.NIO)).category

    def test_status_category_matches_provisioning(self):
        """Test a ledger state's category agrees with categorizing its late days"""
        schedule = generate_schedule(LoanTerms(
            principal_amount=Money(Decimal('1000.00'), Currency.NIO),
            monthly_interest_rate=Decimal('5'),
            term_months=Decimal('1'),
            payment_frequency=PaymentFrequency.WEEKLY,
            start_date=date(2025, 1, 1)
        ))
        for day_offset in range(0, 150, 7):
            as_of = date.fromordinal(date(2025, 1, 1).toordinal() + day_offset)
            state = compute_status(schedule, [], as_of)
            assert state.category == categorize(state.late_days, state.remaining_balance).category


class TestRuleTable:
    """Test rule table validation"""

    def test_default_table_valid(self):
        """Test the default table partitions [0, infinity)"""
        validate_rule_table(DEFAULT_PROVISION_RULES)
        assert len(DEFAULT_PROVISION_RULES) == 5

    def test_empty_table(self):
        """Test an empty table is rejected"""
        with pytest.raises(ValidationError, match="empty"):
            validate_rule_table(())

    def test_gap(self):
        """Test a gap between buckets is rejected"""
        rules = (
            ProvisionBucket(ProvisionCategory.A, 0, 10, Decimal('0.01'), "A"),
            ProvisionBucket(ProvisionCategory.B, 11, None, Decimal('1'), "B"),
        )
        with pytest.raises(ValidationError, match="expected 10"):
            validate_rule_table(rules)

    def test_overlap(self):
        """Test overlapping buckets are rejected"""
        rules = (
            ProvisionBucket(ProvisionCategory.A, 0, 10, Decimal('0.01'), "A"),
            ProvisionBucket(ProvisionCategory.B, 5, None, Decimal('1'), "B"),
        )
        with pytest.raises(ValidationError, match="expected 10"):
            validate_rule_table(rules)

    def test_bounded_last_bucket(self):
        """Test the table must extend to infinity"""
        rules = (ProvisionBucket(ProvisionCategory.A, 0, 10, Decimal('0.01'), "A"),)
        with pytest.raises(ValidationError, match="unbounded"):
            validate_rule_table(rules)

    def test_unbounded_middle_bucket(self):
        """Test only the last bucket may be unbounded"""
        rules = (
            ProvisionBucket(ProvisionCategory.A, 0, None, Decimal('0.01'), "A"),
            ProvisionBucket(ProvisionCategory.B, 10, None, Decimal('1'), "B"),
        )
        with pytest.raises(ValidationError, match="Only the last bucket"):
            validate_rule_table(rules)

    def test_reserve_rate_range(self):
        """Test reserve rates must lie within 0..1"""
        rules = (ProvisionBucket(ProvisionCategory.A, 0, None, Decimal('1.5'), "A"),)
        with pytest.raises(ValidationError, match="outside 0..1"):
            validate_rule_table(rules)

    def test_custom_table_lookup(self):
        """Test lookups against a custom table"""
        rules = (
            ProvisionBucket(ProvisionCategory.A, 0, 1, Decimal('0'), "Current"),
            ProvisionBucket(ProvisionCategory.E, 1, None, Decimal('1'), "Loss"),
        )
        validate_rule_table(rules)

        assert delinquency_category(0, rules) == ProvisionCategory.A
        assert categorize(1, Money(Decimal('50'), Currency.USD), rules).provision_amount == \
            Money(Decimal('50'), Currency.USD)
