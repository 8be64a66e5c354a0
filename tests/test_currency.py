"""
Test suite for currency module

Tests the Money class and Decimal precision handling.
All monetary calculations must use Decimal precision.
"""

import pytest
from decimal import Decimal, ROUND_DOWN

from credit_engine.currency import Money, Currency, decimal_from_string, validate_decimal_precision


class TestMoney:
    """Test Money class operations"""

    def test_money_creation(self):
        """Test Money object creation and rounding to currency precision"""
        money = Money(Decimal('100.50'), Currency.NIO)
        assert money.amount == Decimal('100.50')
        assert money.currency == Currency.NIO

        assert Money(Decimal('100.555'), Currency.NIO).amount == Decimal('100.56')
        assert Money(Decimal('100.7'), Currency.JPY).amount == Decimal('101')

    def test_non_decimal_input_converted(self):
        """Test ints and strings become Decimal"""
        assert Money(5, Currency.USD).amount == Decimal('5.00')
        assert Money('2.345', Currency.USD).amount == Decimal('2.35')

    def test_money_arithmetic(self):
        """Test Money arithmetic operations"""
        money1 = Money(Decimal('100.50'), Currency.NIO)
        money2 = Money(Decimal('50.25'), Currency.NIO)

        assert (money1 + money2).amount == Decimal('150.75')
        assert (money1 - money2).amount == Decimal('50.25')
        assert (money1 * Decimal('2')).amount == Decimal('201.00')
        assert (money1 * 3).amount == Decimal('301.50')

    def test_money_comparison(self):
        """Test Money comparison operations"""
        money1 = Money(Decimal('100.00'), Currency.NIO)
        money2 = Money(Decimal('50.00'), Currency.NIO)
        money3 = Money(Decimal('100.00'), Currency.NIO)

        assert money1 == money3
        assert money1 != money2
        assert money1 > money2
        assert money2 < money1
        assert money1 >= money3
        assert money1 <= money3
        assert min(money1, money2) == money2
        assert money1 != Decimal('100.00')

    def test_money_currency_mismatch(self):
        """Test that operations with different currencies raise errors"""
        nio_money = Money(Decimal('100.00'), Currency.NIO)
        usd_money = Money(Decimal('100.00'), Currency.USD)

        with pytest.raises(ValueError, match="Cannot add NIO and USD"):
            nio_money + usd_money
        with pytest.raises(ValueError, match="Cannot subtract USD from NIO"):
            nio_money - usd_money
        with pytest.raises(ValueError, match="Cannot compare NIO and USD"):
            nio_money < usd_money
        assert nio_money != usd_money

    def test_money_state_checks(self):
        """Test Money state checking methods"""
        zero_money = Money(Decimal('0.00'), Currency.NIO)
        positive_money = Money(Decimal('100.50'), Currency.NIO)
        negative_money = Money(Decimal('-50.25'), Currency.NIO)

        assert zero_money.is_zero()
        assert not zero_money.is_positive()
        assert not zero_money.is_negative()
        assert positive_money.is_positive()
        assert negative_money.is_negative()

    def test_money_string_formatting(self):
        """Test Money string representation"""
        assert Money(Decimal('1234.56'), Currency.NIO).to_string() == "NIO 1,234.56"
        assert Money(Decimal('1234'), Currency.JPY).to_string() == "JPY 1,234"


class TestCurrencyPrecisionRules:
    """Test currency-specific precision rules"""

    def test_minor_units(self):
        """Test the smallest representable amount per currency"""
        assert Currency.NIO.minor_unit == Decimal('0.01')
        assert Currency.JPY.minor_unit == Decimal('1')

    def test_rounding_method(self):
        """Test that ROUND_HALF_UP is used consistently"""
        assert Money(Decimal('123.455'), Currency.USD).amount == Decimal('123.46')
        assert Money(Decimal('123.5'), Currency.JPY).amount == Decimal('124')


class TestUtilityFunctions:
    """Test utility functions for decimal handling"""

    def test_decimal_from_string_valid(self):
        """Test decimal conversion from valid strings"""
        assert decimal_from_string("123.45") == Decimal("123.45")
        assert decimal_from_string("1,234.56") == Decimal("1234.56")
        assert decimal_from_string("123,45") == Decimal("123.45")
        assert decimal_from_string("C$1,234.56") == Decimal("1234.56")
        assert decimal_from_string("-123.45") == Decimal("-123.45")

    def test_decimal_from_string_invalid(self):
        """Test decimal conversion from invalid strings"""
        with pytest.raises(ValueError):
            decimal_from_string("")
        with pytest.raises(ValueError):
            decimal_from_string("not_a_number")
        with pytest.raises(ValueError):
            decimal_from_string(None)

    def test_validate_decimal_precision(self):
        """Test decimal precision validation with both rounding modes"""
        assert validate_decimal_precision(Decimal('123.456'), Currency.USD) == Decimal('123.46')
        assert validate_decimal_precision(Decimal('123.7'), Currency.JPY) == Decimal('124')
        assert validate_decimal_precision(Decimal('416.6666'), Currency.NIO, rounding=ROUND_DOWN) == \
            Decimal('416.66')
