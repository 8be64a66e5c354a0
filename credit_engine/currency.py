"""
Currency Precision Module

Money amounts for schedules, ledgers and provisions. Amounts are Decimal and
are rounded half-up to the currency's minor unit on construction; float never
enters a monetary calculation.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
import re

getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 codes with their number of decimal places"""
    NIO = ("NIO", 2)  # Nicaraguan Cordoba
    USD = ("USD", 2)
    EUR = ("EUR", 2)
    GBP = ("GBP", 2)
    JPY = ("JPY", 0)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @property
    def minor_unit(self) -> Decimal:
        """Smallest representable amount (0.01 for two-decimal currencies)"""
        return Decimal('0.1') ** self.precision


@dataclass(frozen=True)
class Money:
    """
    Immutable amount in a single currency.

    Adding, subtracting or ordering amounts of different currencies raises
    ValueError; equality across currencies is simply False.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        amount = self.amount if isinstance(self.amount, Decimal) else Decimal(str(self.amount))
        object.__setattr__(self, 'amount', amount.quantize(self.currency.minor_unit, rounding=ROUND_HALF_UP))

    def _same_currency(self, other: 'Money', message: str) -> None:
        if self.currency != other.currency:
            raise ValueError(message.format(mine=self.currency.code, theirs=other.currency.code))

    def __add__(self, other: 'Money') -> 'Money':
        self._same_currency(other, "Cannot add {mine} and {theirs}")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._same_currency(other, "Cannot subtract {theirs} from {mine}")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __lt__(self, other: 'Money') -> bool:
        self._same_currency(other, "Cannot compare {mine} and {theirs}")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._same_currency(other, "Cannot compare {mine} and {theirs}")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._same_currency(other, "Cannot compare {mine} and {theirs}")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._same_currency(other, "Cannot compare {mine} and {theirs}")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def to_string(self) -> str:
        """Display form, e.g. ``NIO 1,234.56``"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


def decimal_from_string(value: str) -> Decimal:
    """
    Parse an amount typed by an operator or read from a stored record

    Currency symbols and whitespace are ignored. A single comma followed by at
    most two digits is read as the decimal separator (``123,45``); otherwise
    commas are thousands separators.

    Raises:
        ValueError: If the string does not hold a number
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if ',' in clean_value and '.' in clean_value:
        clean_value = clean_value.replace(',', '')
    elif clean_value.count(',') == 1:
        whole, fraction = clean_value.split(',')
        separator = '.' if len(fraction) <= 2 else ''
        clean_value = f"{whole}{separator}{fraction}"

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def validate_decimal_precision(value: Decimal, currency: Currency, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Quantize ``value`` to the currency's minor unit (ROUND_DOWN when slicing an amount into parts)"""
    return value.quantize(currency.minor_unit, rounding=rounding)
