"""
Ledger Status Module

Derives a credit's financial state from its schedule and payment ledger as of
an explicit reference date. Nothing here is stored; the same inputs always
produce the same LedgerState, which is what lets historical receipts be
reprinted with the figures they originally showed.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
from enum import Enum

from .currency import Money, Currency
from .exceptions import ValidationError
from .loans import Installment, Payment, PaymentSchedule
from .provisioning import (
    DEFAULT_PROVISION_RULES, ProvisionBucket, ProvisionCategory, delinquency_category, validate_rule_table
)


class InstallmentStanding(Enum):
    """Where an installment stands on the reference date"""
    PAID = "paid"
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    PENDING = "pending"


@dataclass(frozen=True)
class InstallmentPosition:
    """Coverage of one installment by cumulative payments"""
    installment: Installment
    covered: Money
    outstanding: Money
    standing: InstallmentStanding

    @property
    def is_settled(self) -> bool:
        return self.outstanding.is_zero()


@dataclass(frozen=True)
class LedgerState:
    """Financial state of a credit on ``as_of_date``"""
    as_of_date: date
    total_amount: Money
    total_paid: Money
    remaining_balance: Money
    overdue_amount: Money
    due_today_amount: Money
    advance_amount: Money
    paid_today: Money
    late_days: int
    first_unpaid_date: Optional[date]
    last_payment_date: Optional[date]
    maturity_date: date
    is_due_today: bool
    is_expired: bool
    category: ProvisionCategory
    positions: Tuple[InstallmentPosition, ...]

    @property
    def currency(self) -> Currency:
        return self.total_amount.currency

    @property
    def is_paid_off(self) -> bool:
        return self.remaining_balance.is_zero()

    @property
    def installments(self) -> Tuple[Installment, ...]:
        return tuple(position.installment for position in self.positions)

    @property
    def paid_share(self) -> Decimal:
        """Fraction of the total scheduled amount paid so far"""
        return self.total_paid.amount / self.total_amount.amount


def _money_total(amounts: Iterable[Money], currency: Currency) -> Money:
    return Money(sum((m.amount for m in amounts), Decimal('0')), currency)


def _standing(installment: Installment, outstanding: Money, as_of_date: date) -> InstallmentStanding:
    if outstanding.is_zero():
        return InstallmentStanding.PAID
    if installment.due_date < as_of_date:
        return InstallmentStanding.OVERDUE
    if installment.due_date == as_of_date:
        return InstallmentStanding.DUE_TODAY
    return InstallmentStanding.PENDING


def _assemble_state(installments: Sequence[Installment], total_paid: Money, paid_today: Money,
                    last_payment_date: Optional[date], as_of_date: date,
                    rules: Sequence[ProvisionBucket]) -> LedgerState:
    """Build the ledger state from cumulative payment totals"""
    currency = total_paid.currency
    zero = Money(Decimal('0'), currency)

    positions: List[InstallmentPosition] = []
    owed_before = zero
    for installment in installments:
        # Cumulative coverage: payments settle installments strictly in schedule order
        covered = min(max(total_paid - owed_before, zero), installment.amount)
        outstanding = installment.amount - covered
        positions.append(InstallmentPosition(
            installment=installment,
            covered=covered,
            outstanding=outstanding,
            standing=_standing(installment, outstanding, as_of_date)
        ))
        owed_before = owed_before + installment.amount

    total_amount = owed_before
    overdue = _money_total((p.outstanding for p in positions if p.standing == InstallmentStanding.OVERDUE),
                           currency)
    due_today = _money_total((p.outstanding for p in positions if p.standing == InstallmentStanding.DUE_TODAY),
                             currency)
    advance = _money_total((p.covered for p in positions if p.installment.due_date > as_of_date), currency)
    remaining = max(total_amount - total_paid, zero)

    first_unpaid_date = next((p.installment.due_date for p in positions if not p.is_settled), None)
    if first_unpaid_date is not None and first_unpaid_date < as_of_date:
        late_days = (as_of_date - first_unpaid_date).days
    else:
        late_days = 0

    maturity_date = installments[-1].due_date

    return LedgerState(
        as_of_date=as_of_date,
        total_amount=total_amount,
        total_paid=total_paid,
        remaining_balance=remaining,
        overdue_amount=overdue,
        due_today_amount=due_today,
        advance_amount=advance,
        paid_today=paid_today,
        late_days=late_days,
        first_unpaid_date=first_unpaid_date,
        last_payment_date=last_payment_date,
        maturity_date=maturity_date,
        is_due_today=due_today.is_positive(),
        is_expired=maturity_date < as_of_date and remaining.is_positive(),
        category=delinquency_category(late_days, rules),
        positions=tuple(positions)
    )


def counted_payments(payments: Iterable[Payment], as_of_date: date) -> List[Payment]:
    """Valid payments collected on or before ``as_of_date``, oldest first"""
    return sorted(
        (p for p in payments if p.is_valid and p.payment_date <= as_of_date),
        key=lambda p: (p.paid_at, p.id)
    )


def compute_status(schedule: PaymentSchedule, payments: Iterable[Payment], as_of_date: date,
                   rules: Sequence[ProvisionBucket] = DEFAULT_PROVISION_RULES) -> LedgerState:
    """
    Compute the ledger state of a credit as of a reference date

    Voided payments and payments collected after ``as_of_date`` are ignored,
    so a past date always yields the state that was in effect on that day.

    Args:
        schedule: Installment schedule of the credit
        payments: Every payment recorded against the credit, voided ones included
        as_of_date: Reference date
        rules: Provision rule table used for the delinquency category

    Returns:
        LedgerState on ``as_of_date``
    """
    if isinstance(as_of_date, datetime) or not isinstance(as_of_date, date):
        raise ValidationError("as_of_date must be a calendar date without a time component")
    if rules is not DEFAULT_PROVISION_RULES:
        validate_rule_table(rules)

    currency = schedule.currency
    counted = counted_payments(payments, as_of_date)
    for payment in counted:
        if payment.amount.currency != currency:
            raise ValidationError(
                f"Payment {payment.id} is in {payment.amount.currency.code}, credit is in {currency.code}"
            )

    last_payment_date = counted[-1].payment_date if counted else None
    return _assemble_state(
        schedule.installments,
        total_paid=_money_total((p.amount for p in counted), currency),
        paid_today=_money_total((p.amount for p in counted if p.payment_date == as_of_date), currency),
        last_payment_date=last_payment_date,
        as_of_date=as_of_date,
        rules=rules
    )
