"""
Loan Module

Loan terms, installment schedule generation and the payment ledger entry.
Schedules are produced from the terms alone: the installment count comes from
the term and frequency, each raw date is resolved through the business day
calendar, and principal and interest are decomposed by the amortization method.
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from datetime import datetime, date, timedelta
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple
from enum import Enum
import calendar
import logging

from .business_days import CalendarResolver
from .currency import Money, Currency, decimal_from_string, validate_decimal_precision
from .exceptions import InvariantViolation, ValidationError
from .frequency import PaymentFrequency
from .storage import StorageRecord


logger = logging.getLogger("credit_engine.schedule")


class AmortizationMethod(Enum):
    """Methods for splitting installments into principal and interest"""
    FLAT = "flat"                            # Interest on original principal, level installments
    DECLINING_BALANCE = "declining_balance"  # Equal principal + interest on declining balance
    EQUAL_INSTALLMENT = "equal_installment"  # French method - level payment, declining interest


class PaymentStatus(Enum):
    """Ledger status of a collected payment"""
    VALID = "valid"
    VOIDED = "voided"


def _to_decimal(value, field_name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, str):
        try:
            return decimal_from_string(value)
        except ValueError as e:
            raise ValidationError(f"{field_name}: {e}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    raise ValidationError(f"{field_name} must be a number, got {type(value).__name__}")


@dataclass(frozen=True)
class LoanTerms:
    """Loan terms fixed at approval/disbursement"""
    principal_amount: Money
    monthly_interest_rate: Decimal      # Percent per month, e.g. 5 for 5%
    term_months: Decimal                # Half-month increments allowed
    payment_frequency: PaymentFrequency
    start_date: date                    # Disbursement date
    holidays: FrozenSet[date] = frozenset()
    amortization_method: AmortizationMethod = AmortizationMethod.FLAT

    def __post_init__(self):
        object.__setattr__(self, 'monthly_interest_rate',
                           _to_decimal(self.monthly_interest_rate, "monthly_interest_rate"))
        object.__setattr__(self, 'term_months', _to_decimal(self.term_months, "term_months"))
        object.__setattr__(self, 'holidays', frozenset(self.holidays))

        if not isinstance(self.principal_amount, Money):
            raise ValidationError("principal_amount must be Money")
        if not self.principal_amount.is_positive():
            raise ValidationError(f"Principal must be positive, got {self.principal_amount.to_string()}")
        if self.monthly_interest_rate <= Decimal('0'):
            raise ValidationError(f"Monthly interest rate must be positive, got {self.monthly_interest_rate}")
        if self.term_months <= Decimal('0'):
            raise ValidationError(f"Term must be positive, got {self.term_months} months")
        if (self.term_months * 2) != (self.term_months * 2).to_integral_value():
            raise ValidationError(f"Term must be a whole number of half months, got {self.term_months}")
        if not isinstance(self.payment_frequency, PaymentFrequency):
            raise ValidationError(f"Unsupported payment frequency: {self.payment_frequency!r}")
        if isinstance(self.start_date, datetime) or not isinstance(self.start_date, date):
            raise ValidationError("start_date must be a calendar date without a time component")

        if self.principal_slice < self.currency.minor_unit:
            raise ValidationError(
                f"Principal {self.principal_amount.to_string()} is too small for "
                f"{self.total_installments} installments"
            )

    @property
    def currency(self) -> Currency:
        return self.principal_amount.currency

    @property
    def total_installments(self) -> int:
        """Number of installments over the term, rounded half up"""
        periods = self.term_months * self.payment_frequency.periods_per_month_decimal
        return max(1, int(periods.quantize(Decimal('1'), rounding=ROUND_HALF_UP)))

    @property
    def periodic_rate(self) -> Decimal:
        """Interest rate per installment period as a fraction"""
        return self.monthly_interest_rate / Decimal('100') / self.payment_frequency.periods_per_month_decimal

    @property
    def principal_slice(self) -> Decimal:
        """Level principal per installment, truncated to the minor unit"""
        return validate_decimal_precision(
            self.principal_amount.amount / Decimal(self.total_installments),
            self.currency,
            rounding=ROUND_DOWN
        )

    def with_holidays(self, holidays: Iterable[date]) -> 'LoanTerms':
        """Copy of these terms under a different holiday calendar"""
        return LoanTerms(
            principal_amount=self.principal_amount,
            monthly_interest_rate=self.monthly_interest_rate,
            term_months=self.term_months,
            payment_frequency=self.payment_frequency,
            start_date=self.start_date,
            holidays=frozenset(holidays),
            amortization_method=self.amortization_method
        )


@dataclass(frozen=True)
class Installment:
    """Single scheduled obligation"""
    number: int
    due_date: date
    principal: Money
    interest: Money
    amount: Money
    balance: Money              # Total (principal + interest) still owed once this is paid
    principal_balance: Money    # Principal still owed once this is paid

    def __post_init__(self):
        if self.principal + self.interest != self.amount:
            raise InvariantViolation(f"Installment {self.number}: amount {self.amount.to_string()} does not equal "
                                     f"principal {self.principal.to_string()} + "
                                     f"interest {self.interest.to_string()}")


@dataclass(frozen=True)
class PaymentSchedule:
    """Installment plan generated from loan terms"""
    periodic_payment: Money
    installments: Tuple[Installment, ...]

    @property
    def currency(self) -> Currency:
        return self.periodic_payment.currency

    @property
    def total_principal(self) -> Money:
        return Money(sum((i.principal.amount for i in self.installments), Decimal('0')), self.currency)

    @property
    def total_interest(self) -> Money:
        return Money(sum((i.interest.amount for i in self.installments), Decimal('0')), self.currency)

    @property
    def total_amount(self) -> Money:
        return Money(sum((i.amount.amount for i in self.installments), Decimal('0')), self.currency)

    @property
    def first_due_date(self) -> date:
        return self.installments[0].due_date

    @property
    def maturity_date(self) -> date:
        return self.installments[-1].due_date

    def installment(self, number: int) -> Installment:
        """Get installment by its 1-based number"""
        if number < 1 or number > len(self.installments):
            raise ValidationError(f"Installment {number} is outside 1..{len(self.installments)}")
        return self.installments[number - 1]


@dataclass
class Payment(StorageRecord):
    """Collected payment; never deleted, only voided"""
    credit_id: str
    amount: Money
    paid_at: datetime
    status: PaymentStatus = PaymentStatus.VALID
    reference: str = ""                 # Receipt / transaction number
    operator: str = ""                  # Who collected it
    voided_at: Optional[datetime] = None
    voided_by: Optional[str] = None
    void_reason: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status == PaymentStatus.VALID

    @property
    def payment_date(self) -> date:
        return self.paid_at.date()


def _add_months(year: int, month: int, months: int, day: int) -> date:
    """Build a date ``months`` after year/month, clamping the day to month end"""
    month = month - 1 + months
    year = year + month // 12
    month = month % 12 + 1
    day = min(day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _daily_date(start: date, index: int, previous: date) -> date:
    return previous + timedelta(days=1)


def _weekly_date(start: date, index: int, previous: date) -> date:
    return start + timedelta(days=PaymentFrequency.WEEKLY.step_days * index)


def _biweekly_date(start: date, index: int, previous: date) -> date:
    return start + timedelta(days=PaymentFrequency.BIWEEKLY_14.step_days * index)


def _semimonthly_date(start: date, index: int, previous: date) -> date:
    # Two anchor days per month derived from the start day (5 -> 5 and 20, 20 -> 5 and 20)
    starts_second_half = start.day > 15
    first_anchor = start.day - 15 if starts_second_half else start.day
    second_anchor = start.day if starts_second_half else start.day + 15

    month_offset, is_second_half = divmod(index + (1 if starts_second_half else 0), 2)
    target_day = second_anchor if is_second_half else first_anchor
    return _add_months(start.year, start.month, month_offset, target_day)


_RAW_DATE_RULES: Dict[PaymentFrequency, Callable[[date, int, date], date]] = {
    PaymentFrequency.DAILY: _daily_date,
    PaymentFrequency.WEEKLY: _weekly_date,
    PaymentFrequency.BIWEEKLY_14: _biweekly_date,
    PaymentFrequency.SEMIMONTHLY: _semimonthly_date,
}

_uncovered = set(PaymentFrequency) - set(_RAW_DATE_RULES)
if _uncovered:
    raise InvariantViolation(f"No date rule for frequencies: {sorted(f.code for f in _uncovered)}")


class ScheduleGenerator:
    """
    Generates installment schedules from loan terms
    """

    def generate(self, terms: LoanTerms) -> PaymentSchedule:
        """
        Generate the full installment schedule

        Args:
            terms: Validated loan terms

        Returns:
            PaymentSchedule with one Installment per period

        Raises:
            SchedulingError: If the holiday calendar blocks a period
            InvariantViolation: If the generated figures do not reconcile
        """
        count = terms.total_installments

        if terms.amortization_method == AmortizationMethod.FLAT:
            splits = self._flat_splits(terms, count)
        elif terms.amortization_method == AmortizationMethod.DECLINING_BALANCE:
            splits = self._declining_balance_splits(terms, count)
        elif terms.amortization_method == AmortizationMethod.EQUAL_INSTALLMENT:
            splits = self._equal_installment_splits(terms, count)
        else:
            raise ValidationError(f"Unsupported amortization method: {terms.amortization_method}")

        due_dates = self._due_dates(terms, count)

        currency = terms.currency
        total_amount = sum((p + i for p, i in splits), Decimal('0'))
        remaining = total_amount
        remaining_principal = terms.principal_amount.amount

        installments = []
        for number, ((principal, interest), due_date) in enumerate(zip(splits, due_dates), start=1):
            remaining -= principal + interest
            remaining_principal -= principal
            installments.append(Installment(
                number=number,
                due_date=due_date,
                principal=Money(principal, currency),
                interest=Money(interest, currency),
                amount=Money(principal + interest, currency),
                balance=Money(remaining, currency),
                principal_balance=Money(remaining_principal, currency)
            ))

        schedule = PaymentSchedule(
            periodic_payment=installments[0].amount,
            installments=tuple(installments)
        )
        self._verify(terms, schedule)

        logger.debug(
            "Generated %d %s installments from %s to %s, periodic payment %s",
            count, terms.payment_frequency.code, schedule.first_due_date.isoformat(),
            schedule.maturity_date.isoformat(), schedule.periodic_payment.to_string()
        )
        return schedule

    def _flat_splits(self, terms: LoanTerms, count: int) -> List[Tuple[Decimal, Decimal]]:
        """Interest on the original principal for the whole term, spread evenly"""
        principal = terms.principal_amount.amount
        total_interest = validate_decimal_precision(
            principal * terms.monthly_interest_rate / Decimal('100') * terms.term_months,
            terms.currency
        )
        principal_slice = terms.principal_slice
        interest_slice = validate_decimal_precision(
            total_interest / Decimal(count), terms.currency, rounding=ROUND_DOWN
        )

        splits = [(principal_slice, interest_slice)] * (count - 1)
        # Last installment absorbs the truncation remainder
        splits.append((
            principal - principal_slice * (count - 1),
            total_interest - interest_slice * (count - 1)
        ))
        return splits

    def _declining_balance_splits(self, terms: LoanTerms, count: int) -> List[Tuple[Decimal, Decimal]]:
        """Fixed principal slices, interest on the balance outstanding each period"""
        principal_slice = terms.principal_slice
        rate = terms.periodic_rate
        balance = terms.principal_amount.amount

        splits = []
        for number in range(1, count + 1):
            interest = validate_decimal_precision(balance * rate, terms.currency)
            principal = balance if number == count else principal_slice
            splits.append((principal, interest))
            balance -= principal
        return splits

    def _equal_installment_splits(self, terms: LoanTerms, count: int) -> List[Tuple[Decimal, Decimal]]:
        """Level payment: P * [c(1+c)^n] / [(1+c)^n - 1]"""
        rate = terms.periodic_rate
        balance = terms.principal_amount.amount
        factor = (Decimal('1') + rate) ** count
        payment = validate_decimal_precision(
            balance * (rate * factor) / (factor - Decimal('1')), terms.currency
        )

        splits = []
        for number in range(1, count + 1):
            interest = validate_decimal_precision(balance * rate, terms.currency)
            principal = payment - interest
            # Final payment clears exactly what is left
            if number == count or principal > balance:
                principal = balance
            splits.append((principal, interest))
            balance -= principal
        return splits

    def _due_dates(self, terms: LoanTerms, count: int) -> List[date]:
        """Resolve every period's raw date to a business day, strictly increasing"""
        resolver = CalendarResolver(terms.holidays)
        frequency = terms.payment_frequency
        next_raw_date = _RAW_DATE_RULES[frequency]

        due_dates = []
        previous = terms.start_date
        for index in range(1, count + 1):
            raw = max(next_raw_date(terms.start_date, index, previous), previous + timedelta(days=1))
            previous = resolver.next_business_date(raw, frequency)
            due_dates.append(previous)
        return due_dates

    def _verify(self, terms: LoanTerms, schedule: PaymentSchedule) -> None:
        """Fail loudly if the schedule does not reconcile with the terms"""
        if schedule.total_principal != terms.principal_amount:
            raise InvariantViolation(
                f"Installment principal sums to {schedule.total_principal.to_string()}, "
                f"expected {terms.principal_amount.to_string()}"
            )
        if not schedule.installments[-1].balance.is_zero():
            raise InvariantViolation(
                f"Final balance is {schedule.installments[-1].balance.to_string()}, expected zero"
            )
        previous_balance = schedule.total_amount
        for installment in schedule.installments:
            if not installment.amount.is_positive() or installment.principal.is_negative():
                raise InvariantViolation(
                    f"Installment {installment.number} has non-positive amount {installment.amount.to_string()}"
                )
            if installment.balance >= previous_balance:
                raise InvariantViolation(f"Balance does not decrease at installment {installment.number}")
            previous_balance = installment.balance


def generate_schedule(terms: LoanTerms) -> PaymentSchedule:
    """Generate the installment schedule for ``terms``"""
    return ScheduleGenerator().generate(terms)
