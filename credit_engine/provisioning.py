"""
Provisioning Module

Delinquency buckets and regulatory loss reserves. The rule table is plain data:
an ascending partition of late days into categories, each with a reserve rate.
The same table drives both the delinquency category shown on a credit and the
provision computed for it.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple
from enum import Enum

from .currency import Money
from .exceptions import ValidationError


class ProvisionCategory(Enum):
    """Regulatory risk categories"""
    A = "A"     # Normal risk
    B = "B"     # Potential risk
    C = "C"     # Real risk
    D = "D"     # Doubtful recovery
    E = "E"     # Unrecoverable


@dataclass(frozen=True)
class ProvisionBucket:
    """Late day range [min_days, max_days) with its reserve rate"""
    category: ProvisionCategory
    min_days: int
    max_days: Optional[int]     # Exclusive; None means unbounded
    reserve_rate: Decimal       # Fraction of the remaining balance
    label: str

    def contains(self, late_days: int) -> bool:
        if late_days < self.min_days:
            return False
        return self.max_days is None or late_days < self.max_days


@dataclass(frozen=True)
class ProvisionResult:
    """Provision computed for one credit"""
    category: ProvisionCategory
    bucket_label: str
    reserve_rate: Decimal
    provision_amount: Money


DEFAULT_PROVISION_RULES: Tuple[ProvisionBucket, ...] = (
    ProvisionBucket(ProvisionCategory.A, 0, 16, Decimal('0.01'), "A (Normal risk)"),
    ProvisionBucket(ProvisionCategory.B, 16, 31, Decimal('0.05'), "B (Potential risk)"),
    ProvisionBucket(ProvisionCategory.C, 31, 61, Decimal('0.20'), "C (Real risk)"),
    ProvisionBucket(ProvisionCategory.D, 61, 91, Decimal('0.60'), "D (Doubtful recovery)"),
    ProvisionBucket(ProvisionCategory.E, 91, None, Decimal('1.00'), "E (Unrecoverable)"),
)


def validate_rule_table(rules: Sequence[ProvisionBucket]) -> None:
    """
    Check that a rule table partitions [0, infinity) without gaps or overlaps

    Raises:
        ValidationError: If the table is empty, unordered, gapped, overlapping or bounded
    """
    if not rules:
        raise ValidationError("Provision rule table is empty")

    expected_start = 0
    for index, bucket in enumerate(rules):
        if bucket.min_days != expected_start:
            raise ValidationError(
                f"Bucket {bucket.category.value} starts at {bucket.min_days} days, expected {expected_start}"
            )
        if not (Decimal('0') <= bucket.reserve_rate <= Decimal('1')):
            raise ValidationError(f"Bucket {bucket.category.value} reserve rate {bucket.reserve_rate} outside 0..1")

        is_last = index == len(rules) - 1
        if bucket.max_days is None:
            if not is_last:
                raise ValidationError(f"Only the last bucket may be unbounded, not {bucket.category.value}")
            return
        if bucket.max_days <= bucket.min_days:
            raise ValidationError(f"Bucket {bucket.category.value} has an empty day range")
        expected_start = bucket.max_days

    raise ValidationError("Last provision bucket must be unbounded")


def bucket_for(late_days: int, rules: Sequence[ProvisionBucket] = DEFAULT_PROVISION_RULES) -> ProvisionBucket:
    """Find the bucket whose day range contains ``late_days``"""
    if late_days < 0:
        raise ValidationError(f"Late days cannot be negative, got {late_days}")

    for bucket in rules:
        if bucket.contains(late_days):
            return bucket

    # Unreachable for a validated table
    raise ValidationError(f"No provision bucket covers {late_days} late days")


def delinquency_category(late_days: int,
                         rules: Sequence[ProvisionBucket] = DEFAULT_PROVISION_RULES) -> ProvisionCategory:
    """Delinquency category shown on a credit with ``late_days`` of arrears"""
    return bucket_for(late_days, rules).category


def categorize(late_days: int, remaining_balance: Money,
               rules: Sequence[ProvisionBucket] = DEFAULT_PROVISION_RULES) -> ProvisionResult:
    """
    Compute the loss provision for one credit

    Args:
        late_days: Days in arrears
        remaining_balance: Amount still owed
        rules: Provision rule table

    Returns:
        ProvisionResult with the bucket and the reserve amount
    """
    if remaining_balance.is_negative():
        raise ValidationError(f"Remaining balance cannot be negative, got {remaining_balance.to_string()}")

    bucket = bucket_for(late_days, rules)
    return ProvisionResult(
        category=bucket.category,
        bucket_label=bucket.label,
        reserve_rate=bucket.reserve_rate,
        provision_amount=remaining_balance * bucket.reserve_rate
    )


validate_rule_table(DEFAULT_PROVISION_RULES)
