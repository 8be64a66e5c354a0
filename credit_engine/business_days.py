"""
Business Day Resolution Module

Moves candidate payment dates forward to the next valid business day. Sundays
and holidays are never payment dates; Saturdays are skipped for frequencies
that do not collect on Saturdays.
"""

from datetime import date, datetime, timedelta
from typing import FrozenSet, Iterable, Optional
import logging

from .config import get_config
from .exceptions import SchedulingError, ValidationError
from .frequency import PaymentFrequency


logger = logging.getLogger("credit_engine.calendar")

SATURDAY = 5
SUNDAY = 6


class CalendarResolver:
    """Resolves raw calendar dates against a holiday calendar"""

    def __init__(self, holidays: Iterable[date] = (), max_iterations: Optional[int] = None):
        self.holidays: FrozenSet[date] = frozenset(holidays)
        if max_iterations is None:
            max_iterations = get_config().max_date_resolution_iterations
        if max_iterations <= 0:
            raise ValidationError("max_iterations must be positive")
        self.max_iterations = max_iterations

    def is_business_day(self, day: date, frequency: PaymentFrequency) -> bool:
        """Check whether a date can carry an installment for this frequency"""
        weekday = day.weekday()
        if weekday == SUNDAY:
            return False
        if weekday == SATURDAY and not frequency.allows_saturday:
            return False
        return day not in self.holidays

    def next_business_date(self, day: date, frequency: PaymentFrequency) -> date:
        """
        Return the first valid date on or after ``day``

        Raises:
            SchedulingError: If no valid date is found within max_iterations days
        """
        if isinstance(day, datetime):
            raise ValidationError("Payment dates must be calendar dates without a time component")

        candidate = day
        for _ in range(self.max_iterations):
            if self.is_business_day(candidate, frequency):
                return candidate
            candidate = candidate + timedelta(days=1)

        logger.error(
            "No business day found for %s (%s) within %d days; %d holidays configured",
            day.isoformat(), frequency.code, self.max_iterations, len(self.holidays)
        )
        raise SchedulingError(
            f"No valid {frequency.code} payment date within {self.max_iterations} days of {day.isoformat()}"
        )


def next_business_date(day: date, holidays: Iterable[date], frequency: PaymentFrequency) -> date:
    """Resolve ``day`` to the next valid business date for ``frequency``"""
    return CalendarResolver(holidays).next_business_date(day, frequency)
