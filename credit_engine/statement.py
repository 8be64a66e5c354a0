"""
Account Statement Module

Reconstructs a credit's history from its schedule and payment ledger: which
payment cleared each installment and how late, the principal/interest split of
every payment, and the before/after figures printed on a payment receipt.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import date
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
from enum import Enum

from .allocation import PaymentAllocation, replay_payment
from .currency import Money
from .exceptions import PaymentNotFoundError
from .loans import Installment, Payment, PaymentSchedule
from .status import LedgerState, compute_status, counted_payments


class StatementStanding(Enum):
    """Installment standing shown on a statement"""
    PAID = "paid"
    LATE = "late"
    PENDING = "pending"


@dataclass(frozen=True)
class StatementInstallment:
    installment: Installment
    paid_amount: Money
    paid_on: Optional[date]     # Date of the payment that cleared it
    late_days: int
    standing: StatementStanding


@dataclass(frozen=True)
class StatementPayment:
    payment: Payment
    allocation: PaymentAllocation

    @property
    def principal_applied(self) -> Money:
        return self.allocation.principal_applied

    @property
    def interest_applied(self) -> Money:
        return self.allocation.interest_applied


@dataclass(frozen=True)
class AccountStatement:
    """Installment-by-installment and payment-by-payment account history"""
    as_of_date: date
    installments: Tuple[StatementInstallment, ...]
    payments: Tuple[StatementPayment, ...]
    state: LedgerState

    @property
    def total_scheduled(self) -> Money:
        return self.state.total_amount

    @property
    def total_paid(self) -> Money:
        return self.state.total_paid

    @property
    def balance(self) -> Money:
        return self.state.remaining_balance

    @property
    def principal_paid(self) -> Money:
        return Money(sum((p.principal_applied.amount for p in self.payments), Decimal('0')),
                     self.state.currency)

    @property
    def interest_paid(self) -> Money:
        return Money(sum((p.interest_applied.amount for p in self.payments), Decimal('0')),
                     self.state.currency)

    @property
    def overpaid(self) -> Money:
        """Payments received beyond the total scheduled amount"""
        return Money(sum((p.allocation.unapplied.amount for p in self.payments), Decimal('0')),
                     self.state.currency)


@dataclass(frozen=True)
class PaymentDelay:
    total_late_days: int
    average_late_days: Decimal


@dataclass(frozen=True)
class ReceiptSnapshot:
    """Ledger state immediately before and after one payment"""
    payment: Payment
    before: LedgerState
    after: LedgerState
    allocation: PaymentAllocation


def _ledger_order(payment: Payment):
    return (payment.paid_at, payment.id)


def build_statement(schedule: PaymentSchedule, payments: Iterable[Payment], as_of_date: date) -> AccountStatement:
    """
    Build the account statement of a credit as of a date

    Valid payments are replayed in collection order through the allocation
    waterfall, so each payment's principal/interest split is exactly what it
    was when it was collected.
    """
    counted = counted_payments(payments, as_of_date)

    replayed: List[Payment] = []
    statement_payments = []
    cleared_on: Dict[int, date] = {}
    for payment in counted:
        before = compute_status(schedule, replayed, payment.payment_date)
        result = replay_payment(before, payment.amount, payment.paid_at)
        for position in result.updated_state.positions:
            number = position.installment.number
            if position.is_settled and number not in cleared_on:
                cleared_on[number] = payment.payment_date
        statement_payments.append(StatementPayment(payment=payment, allocation=result.allocation))
        replayed.append(payment)

    state = compute_status(schedule, counted, as_of_date)

    statement_installments = []
    for position in state.positions:
        installment = position.installment
        paid_on = cleared_on.get(installment.number)
        if position.is_settled:
            late_days = max(0, (paid_on - installment.due_date).days)
            standing = StatementStanding.PAID
        elif installment.due_date < as_of_date:
            late_days = (as_of_date - installment.due_date).days
            standing = StatementStanding.LATE
        else:
            late_days = 0
            standing = StatementStanding.PENDING
        statement_installments.append(StatementInstallment(
            installment=installment,
            paid_amount=position.covered,
            paid_on=paid_on,
            late_days=late_days,
            standing=standing
        ))

    return AccountStatement(
        as_of_date=as_of_date,
        installments=tuple(statement_installments),
        payments=tuple(statement_payments),
        state=state
    )


def average_payment_delay(statement: AccountStatement) -> PaymentDelay:
    """Total installment late days and their average over the whole plan"""
    total = sum(i.late_days for i in statement.installments)
    count = len(statement.installments)
    average = (Decimal(total) / Decimal(count)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    return PaymentDelay(total_late_days=total, average_late_days=average)


def receipt_snapshot(schedule: PaymentSchedule, payments: Iterable[Payment], payment_id: str) -> ReceiptSnapshot:
    """
    Reconstruct the figures printed on a payment's receipt

    Only valid payments collected before this one count toward the "before"
    state, whatever the current date, so reprinting a receipt always yields the
    original numbers. A payment voided after the fact still reprints as collected,
    and any part of it beyond what was still owed shows as ``allocation.unapplied``.

    Raises:
        PaymentNotFoundError: If no payment has ``payment_id``
    """
    payments = list(payments)
    payment = next((p for p in payments if p.id == payment_id), None)
    if payment is None:
        raise PaymentNotFoundError(f"Payment {payment_id} not found")

    earlier = [p for p in payments if p.is_valid and _ledger_order(p) < _ledger_order(payment)]
    before = compute_status(schedule, earlier, payment.payment_date)
    result = replay_payment(before, payment.amount, payment.paid_at)
    return ReceiptSnapshot(
        payment=payment,
        before=before,
        after=result.updated_state,
        allocation=result.allocation
    )
