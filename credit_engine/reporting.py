"""
Portfolio Reporting Module

Portfolio-wide reports computed from each credit's ledger state on an explicit
date: loss provisioning by bucket, the collector's daily worklist and reloan
eligibility.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from enum import Enum
import logging

from .config import CreditEngineConfig, get_config
from .credits import Credit
from .currency import Money, Currency
from .exceptions import ValidationError
from .provisioning import DEFAULT_PROVISION_RULES, ProvisionBucket, categorize, validate_rule_table
from .status import LedgerState, compute_status


logger = logging.getLogger("credit_engine.reporting")


class CollectionGroup(Enum):
    """Worklist groups in the order a collector works them"""
    PAID_TODAY = 0
    DUE_TODAY = 1
    OVERDUE = 2
    EXPIRED = 3
    UP_TO_DATE = 4


@dataclass
class ReportResult:
    """Result of a report execution"""
    report_id: str
    as_of_date: date
    data: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.metadata:
            self.metadata = {
                'row_count': len(self.data)
            }


@dataclass(frozen=True)
class WorklistEntry:
    credit: Credit
    state: LedgerState
    group: CollectionGroup

    @property
    def amount_to_collect(self) -> Money:
        return self.state.overdue_amount + self.state.due_today_amount


class PortfolioReporter:
    """
    Portfolio reports over a set of credits as of one date
    """

    def __init__(self, credits: Iterable[Credit], as_of_date: date, currency: Currency = Currency.NIO,
                 rules: Sequence[ProvisionBucket] = DEFAULT_PROVISION_RULES,
                 settings: Optional[CreditEngineConfig] = None):
        validate_rule_table(rules)
        self.as_of_date = as_of_date
        self.currency = currency
        self.rules = rules
        self.settings = settings or get_config()

        # Credits in other currencies are reported separately
        self._states: List[Tuple[Credit, LedgerState]] = [
            (credit, compute_status(credit.schedule, credit.payments, as_of_date, rules))
            for credit in credits
            if credit.currency == currency
        ]

    def _zero(self) -> Money:
        return Money(Decimal('0'), self.currency)

    def _active(self) -> List[Tuple[Credit, LedgerState]]:
        return [(credit, state) for credit, state in self._states if not state.is_paid_off]

    def provisioning_report(self) -> ReportResult:
        """
        Loss provision per active credit, with totals per bucket

        Every bucket of the rule table is listed even when it holds no credits.
        """
        data = []
        buckets = {
            bucket.category: {'credits': 0, 'balance': self._zero(), 'provision': self._zero()}
            for bucket in self.rules
        }
        total_balance = self._zero()
        total_provision = self._zero()

        for credit, state in self._active():
            provision = categorize(state.late_days, state.remaining_balance, self.rules)
            data.append({
                'credit_id': credit.id,
                'client_id': credit.client_id,
                'remaining_balance': state.remaining_balance,
                'late_days': state.late_days,
                'category': provision.category.value,
                'bucket_label': provision.bucket_label,
                'reserve_rate': provision.reserve_rate,
                'provision_amount': provision.provision_amount
            })

            bucket_totals = buckets[provision.category]
            bucket_totals['credits'] += 1
            bucket_totals['balance'] = bucket_totals['balance'] + state.remaining_balance
            bucket_totals['provision'] = bucket_totals['provision'] + provision.provision_amount
            total_balance = total_balance + state.remaining_balance
            total_provision = total_provision + provision.provision_amount

        bucket_rows = []
        for bucket in self.rules:
            bucket_totals = buckets[bucket.category]
            bucket_rows.append({
                'category': bucket.category.value,
                'bucket_label': bucket.label,
                'reserve_rate': bucket.reserve_rate,
                'credit_count': bucket_totals['credits'],
                'total_balance': bucket_totals['balance'],
                'total_provision': bucket_totals['provision']
            })

        logger.info(
            "Provisioning report as of %s: %d credits, provision %s",
            self.as_of_date.isoformat(), len(data), total_provision.to_string()
        )
        return ReportResult(
            report_id="provisioning",
            as_of_date=self.as_of_date,
            data=data,
            totals={
                'credit_count': len(data),
                'total_balance': total_balance,
                'total_provision': total_provision,
                'buckets': bucket_rows
            },
            metadata={'row_count': len(data), 'currency': self.currency.code}
        )

    def _collection_group(self, state: LedgerState) -> CollectionGroup:
        if state.paid_today.is_positive():
            return CollectionGroup.PAID_TODAY
        if state.is_due_today:
            return CollectionGroup.DUE_TODAY
        # Past maturity with a balance is always overdue too; expiry takes precedence
        if state.is_expired:
            return CollectionGroup.EXPIRED
        if state.overdue_amount.is_positive():
            return CollectionGroup.OVERDUE
        return CollectionGroup.UP_TO_DATE

    def collection_worklist(self) -> Tuple[List[WorklistEntry], Money]:
        """
        Active credits in the order a collector visits them, and the day's collection target

        Paid-today credits come first, then due today, overdue (most late days
        first), expired and up to date. The target is everything due today plus
        everything overdue.
        """
        entries = [
            WorklistEntry(credit=credit, state=state, group=self._collection_group(state))
            for credit, state in self._active()
        ]

        def sort_key(entry: WorklistEntry):
            late_days = entry.state.late_days if entry.group == CollectionGroup.OVERDUE else 0
            return (entry.group.value, -late_days)

        entries.sort(key=sort_key)

        target = self._zero()
        for entry in entries:
            target = target + entry.amount_to_collect
        return entries, target

    def reloan_candidates(self) -> List[Credit]:
        """Active credits whose paid share has reached the reloan threshold"""
        try:
            threshold = Decimal(self.settings.reloan_paid_threshold_percent) / Decimal('100')
        except ArithmeticError:
            raise ValidationError(
                f"Invalid reloan threshold: {self.settings.reloan_paid_threshold_percent!r}"
            )

        return [credit for credit, state in self._active() if state.paid_share >= threshold]
