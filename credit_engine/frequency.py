"""
Payment Frequency Module

Closed set of repayment frequencies. Each member carries the constants the
schedule generator and calendar resolver need, so no code branches on
frequency names.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional


class PaymentFrequency(Enum):
    """Payment frequency options with their scheduling constants"""
    DAILY = ("daily", 20, None, False)              # Business days only, no Saturdays
    WEEKLY = ("weekly", 4, 7, True)                 # Same weekday every week
    BIWEEKLY_14 = ("biweekly_14", 2, 14, False)     # Every 14 days, Monday to Friday
    SEMIMONTHLY = ("semimonthly", 2, None, True)    # Two fixed days per month

    def __init__(self, code: str, periods_per_month: int, step_days: Optional[int], allows_saturday: bool):
        self.code = code
        self.periods_per_month = periods_per_month
        self.step_days = step_days
        self.allows_saturday = allows_saturday

    @property
    def periods_per_month_decimal(self) -> Decimal:
        return Decimal(self.periods_per_month)

    @classmethod
    def from_code(cls, code: str) -> 'PaymentFrequency':
        """Look up a frequency by its stored code"""
        for member in cls:
            if member.code == code:
                return member
        raise ValueError(f"Unknown payment frequency: {code}")
