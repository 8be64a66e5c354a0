"""
Payment Allocation Module

Applies an incoming payment to a credit's ledger state through a fixed waterfall:
overdue installments oldest first, then the installment due on the payment date,
then advance coverage of future installments. Also performs the VALID -> VOIDED
flip for payment reversal.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Tuple
from enum import Enum
import logging

from .currency import Money, validate_decimal_precision
from .exceptions import (
    InvariantViolation, NoOutstandingBalanceError, PaymentAlreadyVoidedError,
    PaymentExceedsBalanceError, PaymentNotFoundError, ValidationError
)
from .loans import Installment, Payment, PaymentSchedule, PaymentStatus
from .provisioning import DEFAULT_PROVISION_RULES, ProvisionBucket
from .status import LedgerState, InstallmentPosition, _assemble_state, compute_status


logger = logging.getLogger("credit_engine.allocation")


class AllocationBucket(Enum):
    """Waterfall tiers, highest priority first"""
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    ADVANCE = "advance"


@dataclass(frozen=True)
class InstallmentAllocation:
    """Part of a payment applied to one installment"""
    installment_number: int
    bucket: AllocationBucket
    amount: Money
    principal: Money
    interest: Money


@dataclass(frozen=True)
class PaymentAllocation:
    """Breakdown of a payment across the installments it covered"""
    amount: Money
    lines: Tuple[InstallmentAllocation, ...]

    def _bucket_total(self, bucket: AllocationBucket) -> Money:
        total = Decimal('0')
        for line in self.lines:
            if line.bucket == bucket:
                total += line.amount.amount
        return Money(total, self.amount.currency)

    @property
    def overdue_applied(self) -> Money:
        return self._bucket_total(AllocationBucket.OVERDUE)

    @property
    def due_today_applied(self) -> Money:
        return self._bucket_total(AllocationBucket.DUE_TODAY)

    @property
    def advance_applied(self) -> Money:
        return self._bucket_total(AllocationBucket.ADVANCE)

    @property
    def principal_applied(self) -> Money:
        return Money(sum((line.principal.amount for line in self.lines), Decimal('0')), self.amount.currency)

    @property
    def interest_applied(self) -> Money:
        return Money(sum((line.interest.amount for line in self.lines), Decimal('0')), self.amount.currency)

    @property
    def applied(self) -> Money:
        return Money(sum((line.amount.amount for line in self.lines), Decimal('0')), self.amount.currency)

    @property
    def unapplied(self) -> Money:
        """Part of the payment beyond what the credit still owed (only from replayed history)"""
        return self.amount - self.applied

    @property
    def installment_numbers(self) -> Tuple[int, ...]:
        return tuple(line.installment_number for line in self.lines)


@dataclass(frozen=True)
class AllocationResult:
    """Ledger state after the payment plus how the payment was applied"""
    updated_state: LedgerState
    allocation: PaymentAllocation


def _bucket_for(installment: Installment, payment_date: date) -> AllocationBucket:
    if installment.due_date < payment_date:
        return AllocationBucket.OVERDUE
    if installment.due_date == payment_date:
        return AllocationBucket.DUE_TODAY
    return AllocationBucket.ADVANCE


def _interest_covered(installment: Installment, covered: Money) -> Decimal:
    """Interest contained in ``covered`` of this installment, pro rata to its own split"""
    if covered == installment.amount:
        return installment.interest.amount
    return validate_decimal_precision(
        covered.amount * installment.interest.amount / installment.amount.amount,
        covered.currency
    )


def _waterfall(positions: Sequence[InstallmentPosition], payment_date: date) -> List[InstallmentPosition]:
    """Unsettled positions in allocation priority order"""
    open_positions = [p for p in positions if not p.is_settled]
    ordered = []
    for bucket in AllocationBucket:
        ordered.extend(p for p in open_positions if _bucket_for(p.installment, payment_date) == bucket)
    return ordered


def _check_payment(ledger_state: LedgerState, amount: Money, timestamp: datetime) -> date:
    """Validate a payment against the state it is applied to; returns the payment date"""
    if not isinstance(timestamp, datetime):
        raise ValidationError("Payment timestamp must be a datetime")
    payment_date = timestamp.date()
    if ledger_state.as_of_date != payment_date:
        raise ValidationError(
            f"Ledger state is as of {ledger_state.as_of_date.isoformat()}, "
            f"payment is dated {payment_date.isoformat()}"
        )
    if amount.currency != ledger_state.currency:
        raise ValidationError(f"Payment currency {amount.currency.code} does not match "
                              f"credit currency {ledger_state.currency.code}")
    if not amount.is_positive():
        raise ValidationError(f"Payment amount must be positive, got {amount.to_string()}")
    return payment_date


def _check_balance(remaining_balance: Money, amount: Money) -> None:
    if remaining_balance.is_zero():
        raise NoOutstandingBalanceError("Credit has no outstanding balance")
    if amount > remaining_balance:
        raise PaymentExceedsBalanceError(
            f"Payment {amount.to_string()} exceeds remaining balance {remaining_balance.to_string()}"
        )


def _allocate(ledger_state: LedgerState, amount: Money, payment_date: date,
              rules: Sequence[ProvisionBucket]) -> AllocationResult:
    """Run the waterfall; whatever finds no open installment is left unapplied"""
    lines = []
    left = amount
    for position in _waterfall(ledger_state.positions, payment_date):
        if left.is_zero():
            break
        installment = position.installment
        applied = min(left, position.outstanding)
        interest = (_interest_covered(installment, position.covered + applied)
                    - _interest_covered(installment, position.covered))
        lines.append(InstallmentAllocation(
            installment_number=installment.number,
            bucket=_bucket_for(installment, payment_date),
            amount=applied,
            principal=applied - Money(interest, amount.currency),
            interest=Money(interest, amount.currency)
        ))
        left = left - applied

    allocation = PaymentAllocation(amount=amount, lines=tuple(lines))
    if allocation.principal_applied + allocation.interest_applied != allocation.applied:
        raise InvariantViolation(f"Principal and interest of a {amount.to_string()} payment "
                                 f"do not add up to {allocation.applied.to_string()}")

    updated_state = _assemble_state(
        ledger_state.installments,
        total_paid=ledger_state.total_paid + amount,
        paid_today=ledger_state.paid_today + amount,
        last_payment_date=payment_date,
        as_of_date=payment_date,
        rules=rules
    )

    logger.debug(
        "Allocated %s: overdue %s, due today %s, advance %s, unapplied %s",
        amount.to_string(), allocation.overdue_applied.to_string(),
        allocation.due_today_applied.to_string(), allocation.advance_applied.to_string(),
        allocation.unapplied.to_string()
    )
    return AllocationResult(updated_state=updated_state, allocation=allocation)


def apply_payment(ledger_state: LedgerState, amount: Money, timestamp: datetime,
                  rules: Sequence[ProvisionBucket] = DEFAULT_PROVISION_RULES) -> AllocationResult:
    """
    Apply a payment to a ledger state

    Args:
        ledger_state: State of the credit computed as of ``timestamp.date()``
        amount: Payment amount, in the credit's currency
        timestamp: When the payment was collected
        rules: Provision rule table used for the updated category

    Returns:
        AllocationResult with the updated state and the allocation breakdown

    Raises:
        ValidationError: If the amount, currency or timestamp is invalid
        NoOutstandingBalanceError: If the credit is already paid off
        PaymentExceedsBalanceError: If the amount is larger than the remaining balance
    """
    payment_date = _check_payment(ledger_state, amount, timestamp)
    _check_balance(ledger_state.remaining_balance, amount)

    result = _allocate(ledger_state, amount, payment_date, rules)
    if not result.allocation.unapplied.is_zero():
        raise InvariantViolation(
            f"Allocated {result.allocation.applied.to_string()} of a {amount.to_string()} payment"
        )
    return result


def replay_payment(ledger_state: LedgerState, amount: Money, timestamp: datetime,
                   rules: Sequence[ProvisionBucket] = DEFAULT_PROVISION_RULES) -> AllocationResult:
    """
    Re-apply a payment that is already on the ledger

    Used to reconstruct history, so the balance is not enforced: any part of
    the payment beyond what was still owed is reported as
    ``allocation.unapplied`` instead of being rejected.
    """
    payment_date = _check_payment(ledger_state, amount, timestamp)
    return _allocate(ledger_state, amount, payment_date, rules)


def allocate_payment(schedule: PaymentSchedule, payments: Iterable[Payment], amount: Money,
                     timestamp: datetime,
                     rules: Sequence[ProvisionBucket] = DEFAULT_PROVISION_RULES) -> AllocationResult:
    """
    Compute the ledger state on the payment date, then apply the payment to it

    The balance check also counts valid payments dated after ``timestamp``, so
    a backdated payment can never take the ledger past the total scheduled.
    """
    if not isinstance(timestamp, datetime):
        raise ValidationError("Payment timestamp must be a datetime")
    payments = list(payments)
    state = compute_status(schedule, payments, timestamp.date(), rules)
    _check_payment(state, amount, timestamp)

    lifetime_paid = Money(sum((p.amount.amount for p in payments if p.is_valid), Decimal('0')),
                          schedule.currency)
    _check_balance(max(schedule.total_amount - lifetime_paid, Money(Decimal('0'), schedule.currency)), amount)

    return apply_payment(state, amount, timestamp, rules)


def void_payment(payments: Iterable[Payment], payment_id: str, voided_by: Optional[str] = None,
                 reason: Optional[str] = None, voided_at: Optional[datetime] = None) -> List[Payment]:
    """
    Mark a payment as voided

    The payment stays in the ledger with its original id and position; every
    status computation simply stops counting it.

    Returns:
        New payment list with the payment flipped to VOIDED

    Raises:
        PaymentNotFoundError: If no payment has ``payment_id``
        PaymentAlreadyVoidedError: If the payment is already voided
    """
    payments = list(payments)
    for index, payment in enumerate(payments):
        if payment.id != payment_id:
            continue
        if payment.status == PaymentStatus.VOIDED:
            raise PaymentAlreadyVoidedError(f"Payment {payment_id} is already voided")
        payments[index] = replace(
            payment,
            status=PaymentStatus.VOIDED,
            voided_at=voided_at,
            voided_by=voided_by,
            void_reason=reason,
            updated_at=voided_at or payment.updated_at
        )
        return payments

    raise PaymentNotFoundError(f"Payment {payment_id} not found")
