"""
Credit Module

The credit aggregate (terms, generated schedule and payment ledger) and the
manager that persists it through a StorageInterface. Payment recording is
serialized per credit: the credit's lock is held from reading the ledger through
allocating the payment to writing the new ledger entry.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
import threading
import uuid
import weakref

from .allocation import AllocationResult, allocate_payment, void_payment as void_ledger_payment
from .currency import Money, Currency
from .exceptions import CreditNotFoundError
from .frequency import PaymentFrequency
from .loans import (
    AmortizationMethod, Installment, LoanTerms, Payment, PaymentSchedule, PaymentStatus, generate_schedule
)
from .logging_config import get_logger, log_action
from .status import LedgerState, compute_status
from .storage import StorageInterface, StorageRecord


logger = get_logger("credits")


@dataclass
class Credit(StorageRecord):
    """Credit aggregate root"""
    client_id: str
    terms: LoanTerms
    schedule: PaymentSchedule
    payments: List[Payment] = field(default_factory=list)

    @property
    def currency(self) -> Currency:
        return self.terms.currency

    @property
    def valid_payments(self) -> List[Payment]:
        return [p for p in self.payments if p.is_valid]

    def status(self, as_of_date: date) -> LedgerState:
        """Ledger state of this credit on ``as_of_date``"""
        return compute_status(self.schedule, self.payments, as_of_date)


@dataclass(frozen=True)
class RecordedPayment:
    """Stored payment together with how it was allocated"""
    payment: Payment
    result: AllocationResult


class CreditManager:
    """
    Manages credits from disbursement through payoff
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage

        self.credits_table = "credits"
        self.schedules_table = "payment_schedules"
        self.payments_table = "credit_payments"

        # A lock lives as long as some caller holds it
        self._locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _credit_lock(self, credit_id: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks.setdefault(credit_id, threading.RLock())

    def create_credit(self, client_id: str, terms: LoanTerms,
                      created_at: Optional[datetime] = None) -> Credit:
        """
        Create a credit and store its generated schedule

        Args:
            client_id: Borrower identifier
            terms: Approved loan terms
            created_at: Record timestamp (defaults to now)

        Returns:
            Created Credit
        """
        now = created_at or datetime.now(timezone.utc)
        schedule = generate_schedule(terms)

        credit = Credit(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            client_id=client_id,
            terms=terms,
            schedule=schedule
        )

        with self.storage.atomic():
            self.storage.save(self.credits_table, credit.id, self._credit_to_dict(credit))
            self.storage.save(self.schedules_table, credit.id, self._schedule_to_dict(credit.id, schedule))

        log_action(
            logger, "info", f"Credit created for client {client_id}",
            action="credit_created", resource=f"credit:{credit.id}",
            extra={
                "principal_amount": terms.principal_amount.to_string(),
                "monthly_interest_rate": str(terms.monthly_interest_rate),
                "term_months": str(terms.term_months),
                "payment_frequency": terms.payment_frequency.code,
                "installments": len(schedule.installments),
                "maturity_date": schedule.maturity_date.isoformat()
            }
        )
        return credit

    def get_credit(self, credit_id: str) -> Credit:
        """
        Load a credit with its schedule and full payment ledger

        Raises:
            CreditNotFoundError: If the credit does not exist
        """
        credit_dict = self.storage.load(self.credits_table, credit_id)
        if not credit_dict:
            raise CreditNotFoundError(f"Credit {credit_id} not found")
        return self._credit_from_dict(credit_dict)

    def list_credits(self, client_id: Optional[str] = None) -> List[Credit]:
        """List stored credits, optionally for one client"""
        if client_id:
            credits_data = self.storage.find(self.credits_table, {"client_id": client_id})
        else:
            credits_data = self.storage.load_all(self.credits_table)
        credits = [self._credit_from_dict(data) for data in credits_data]
        credits.sort(key=lambda c: (c.created_at, c.id))
        return credits

    def get_status(self, credit_id: str, as_of_date: date) -> LedgerState:
        """Ledger state of a credit on ``as_of_date``"""
        return self.get_credit(credit_id).status(as_of_date)

    def get_payments(self, credit_id: str) -> List[Payment]:
        """Every payment of a credit, voided ones included, in collection order"""
        payments_data = self.storage.find(self.payments_table, {"credit_id": credit_id})
        payments = [self._payment_from_dict(data) for data in payments_data]
        payments.sort(key=lambda p: (p.paid_at, p.id))
        return payments

    def record_payment(self, credit_id: str, amount: Money, paid_at: datetime,
                       reference: str = "", operator: str = "") -> RecordedPayment:
        """
        Allocate and store a collected payment

        Args:
            credit_id: Credit ID
            amount: Amount collected
            paid_at: When it was collected
            reference: Receipt or transaction number
            operator: Who collected it

        Returns:
            RecordedPayment with the stored payment and its allocation

        Raises:
            CreditNotFoundError: If the credit does not exist
            ValidationError: If the amount is not positive or in the wrong currency
            NoOutstandingBalanceError: If the credit is already paid off
            PaymentExceedsBalanceError: If the amount exceeds the remaining balance
        """
        with self._credit_lock(credit_id):
            credit = self.get_credit(credit_id)
            result = allocate_payment(credit.schedule, credit.payments, amount, paid_at)

            now = datetime.now(timezone.utc)
            payment = Payment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                credit_id=credit_id,
                amount=amount,
                paid_at=paid_at,
                reference=reference,
                operator=operator
            )

            with self.storage.atomic():
                self._save_payment(payment)

        log_action(
            logger, "info", f"Payment of {amount.to_string()} recorded",
            user_id=operator or None, action="payment_recorded", resource=f"credit:{credit_id}",
            extra={
                "payment_id": payment.id,
                "reference": reference,
                "overdue_applied": result.allocation.overdue_applied.to_string(),
                "due_today_applied": result.allocation.due_today_applied.to_string(),
                "advance_applied": result.allocation.advance_applied.to_string(),
                "remaining_balance": result.updated_state.remaining_balance.to_string()
            }
        )
        return RecordedPayment(payment=payment, result=result)

    def void_payment(self, credit_id: str, payment_id: str, voided_by: Optional[str] = None,
                     reason: Optional[str] = None, voided_at: Optional[datetime] = None) -> Payment:
        """
        Void a payment; it stays in the ledger but no longer counts

        Raises:
            CreditNotFoundError: If the credit does not exist
            PaymentNotFoundError: If the payment is not part of this credit
            PaymentAlreadyVoidedError: If it is already voided
        """
        with self._credit_lock(credit_id):
            credit = self.get_credit(credit_id)
            payments = void_ledger_payment(
                credit.payments, payment_id,
                voided_by=voided_by, reason=reason,
                voided_at=voided_at or datetime.now(timezone.utc)
            )
            voided = next(p for p in payments if p.id == payment_id)

            with self.storage.atomic():
                self._save_payment(voided)

        log_action(
            logger, "warning", f"Payment {payment_id} voided",
            user_id=voided_by, action="payment_voided", resource=f"credit:{credit_id}",
            extra={"payment_id": payment_id, "amount": voided.amount.to_string(), "reason": reason}
        )
        return voided

    def resynchronize_schedule(self, credit_id: str, holidays: Iterable[date]) -> PaymentSchedule:
        """
        Regenerate a credit's schedule under a new holiday calendar

        The stored terms and schedule are replaced together; if generation fails
        nothing is written.
        """
        holidays = frozenset(holidays)
        with self._credit_lock(credit_id):
            credit = self.get_credit(credit_id)
            previous_maturity = self._resynchronize(credit, holidays)
            with self.storage.atomic():
                self._save_resynchronized(credit)

        self._log_resynchronized(credit, previous_maturity)
        return credit.schedule

    def resynchronize_schedules(self, holidays: Iterable[date]) -> List[str]:
        """
        Regenerate every credit's schedule under a new holiday calendar

        All schedules are generated before any is written, so a calendar that
        blocks one credit's dates leaves every stored schedule untouched.

        Returns:
            IDs of the credits whose schedules were replaced
        """
        holidays = frozenset(holidays)
        credits = self.list_credits()
        locks = [self._credit_lock(c.id) for c in credits]
        for lock in locks:
            lock.acquire()
        try:
            credits = [self.get_credit(c.id) for c in credits]
            previous_maturities = [self._resynchronize(credit, holidays) for credit in credits]
            with self.storage.atomic():
                for credit in credits:
                    self._save_resynchronized(credit)
        finally:
            for lock in reversed(locks):
                lock.release()

        for credit, previous_maturity in zip(credits, previous_maturities):
            self._log_resynchronized(credit, previous_maturity)
        return [c.id for c in credits]

    def _resynchronize(self, credit: Credit, holidays: frozenset) -> date:
        """Regenerate the credit's schedule in place; returns the previous maturity date"""
        previous_maturity = credit.schedule.maturity_date
        credit.terms = credit.terms.with_holidays(holidays)
        credit.schedule = generate_schedule(credit.terms)
        credit.updated_at = datetime.now(timezone.utc)
        return previous_maturity

    def _log_resynchronized(self, credit: Credit, previous_maturity: date) -> None:
        log_action(
            logger, "info", f"Schedule regenerated for credit {credit.id}",
            action="schedule_regenerated", resource=f"credit:{credit.id}",
            extra={
                "holidays": len(credit.terms.holidays),
                "previous_maturity_date": previous_maturity.isoformat(),
                "maturity_date": credit.schedule.maturity_date.isoformat()
            }
        )

    def _save_resynchronized(self, credit: Credit) -> None:
        self.storage.save(self.credits_table, credit.id, self._credit_to_dict(credit))
        self.storage.save(self.schedules_table, credit.id, self._schedule_to_dict(credit.id, credit.schedule))

    def _save_payment(self, payment: Payment) -> None:
        """Save payment to storage"""
        self.storage.save(self.payments_table, payment.id, self._payment_to_dict(payment))

    def _credit_to_dict(self, credit: Credit) -> Dict:
        """Convert credit to dictionary (schedule and payments are stored separately)"""
        result = credit.to_dict()
        result['client_id'] = credit.client_id
        result['terms'] = self._terms_to_dict(credit.terms)
        return result

    def _credit_from_dict(self, data: Dict) -> Credit:
        """Convert dictionary to credit, loading its schedule and payments"""
        schedule_dict = self.storage.load(self.schedules_table, data['id'])
        if not schedule_dict:
            raise CreditNotFoundError(f"Schedule for credit {data['id']} not found")

        return Credit(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            client_id=data['client_id'],
            terms=self._terms_from_dict(data['terms']),
            schedule=self._schedule_from_dict(schedule_dict),
            payments=self.get_payments(data['id'])
        )

    def _terms_to_dict(self, terms: LoanTerms) -> Dict:
        return {
            'principal_amount': str(terms.principal_amount.amount),
            'principal_currency': terms.principal_amount.currency.code,
            'monthly_interest_rate': str(terms.monthly_interest_rate),
            'term_months': str(terms.term_months),
            'payment_frequency': terms.payment_frequency.code,
            'start_date': terms.start_date.isoformat(),
            'holidays': sorted(h.isoformat() for h in terms.holidays),
            'amortization_method': terms.amortization_method.value
        }

    def _terms_from_dict(self, data: Dict) -> LoanTerms:
        return LoanTerms(
            principal_amount=Money(Decimal(data['principal_amount']), Currency[data['principal_currency']]),
            monthly_interest_rate=Decimal(data['monthly_interest_rate']),
            term_months=Decimal(data['term_months']),
            payment_frequency=PaymentFrequency.from_code(data['payment_frequency']),
            start_date=date.fromisoformat(data['start_date']),
            holidays=frozenset(date.fromisoformat(h) for h in data['holidays']),
            amortization_method=AmortizationMethod(data['amortization_method'])
        )

    def _schedule_to_dict(self, credit_id: str, schedule: PaymentSchedule) -> Dict:
        """Convert schedule to a single record so it is replaced wholesale"""
        return {
            'credit_id': credit_id,
            'currency': schedule.currency.code,
            'periodic_payment': str(schedule.periodic_payment.amount),
            'installments': [
                {
                    'number': i.number,
                    'due_date': i.due_date.isoformat(),
                    'principal': str(i.principal.amount),
                    'interest': str(i.interest.amount),
                    'amount': str(i.amount.amount),
                    'balance': str(i.balance.amount),
                    'principal_balance': str(i.principal_balance.amount)
                }
                for i in schedule.installments
            ]
        }

    def _schedule_from_dict(self, data: Dict) -> PaymentSchedule:
        currency = Currency[data['currency']]

        def get_money(entry: Dict, key: str) -> Money:
            return Money(Decimal(entry[key]), currency)

        return PaymentSchedule(
            periodic_payment=Money(Decimal(data['periodic_payment']), currency),
            installments=tuple(
                Installment(
                    number=entry['number'],
                    due_date=date.fromisoformat(entry['due_date']),
                    principal=get_money(entry, 'principal'),
                    interest=get_money(entry, 'interest'),
                    amount=get_money(entry, 'amount'),
                    balance=get_money(entry, 'balance'),
                    principal_balance=get_money(entry, 'principal_balance')
                )
                for entry in data['installments']
            )
        )

    def _payment_to_dict(self, payment: Payment) -> Dict:
        """Convert payment to dictionary"""
        result = payment.to_dict()
        result['credit_id'] = payment.credit_id
        result['amount'] = str(payment.amount.amount)
        result['currency'] = payment.amount.currency.code
        result['paid_at'] = payment.paid_at.isoformat()
        result['status'] = payment.status.value
        result['reference'] = payment.reference
        result['operator'] = payment.operator
        result['voided_at'] = payment.voided_at.isoformat() if payment.voided_at else None
        result['voided_by'] = payment.voided_by
        result['void_reason'] = payment.void_reason
        return result

    def _payment_from_dict(self, data: Dict) -> Payment:
        """Convert dictionary to payment"""
        voided_at = datetime.fromisoformat(data['voided_at']) if data.get('voided_at') else None

        return Payment(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            credit_id=data['credit_id'],
            amount=Money(Decimal(data['amount']), Currency[data['currency']]),
            paid_at=datetime.fromisoformat(data['paid_at']),
            status=PaymentStatus(data['status']),
            reference=data.get('reference', ""),
            operator=data.get('operator', ""),
            voided_at=voided_at,
            voided_by=data.get('voided_by'),
            void_reason=data.get('void_reason')
        )
