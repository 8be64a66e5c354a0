"""Exception hierarchy for the credit engine."""


class CreditEngineError(Exception):
    """Base exception for all credit engine errors."""


class ValidationError(CreditEngineError, ValueError):
    """Raised when loan terms or a payment are rejected before any computation."""


class SchedulingError(CreditEngineError):
    """Raised when the holiday calendar leaves a period without a valid payment date."""


class LedgerStateError(CreditEngineError):
    """Raised when an operation is not allowed in the credit's current ledger state."""


class NoOutstandingBalanceError(LedgerStateError):
    """Raised when a payment is applied to a credit that is already settled."""


class PaymentExceedsBalanceError(LedgerStateError):
    """Raised when a payment is larger than the remaining balance."""


class PaymentAlreadyVoidedError(LedgerStateError):
    """Raised when voiding a payment that is already voided."""


class RecordNotFoundError(CreditEngineError, LookupError):
    """Raised when a referenced record does not exist."""


class CreditNotFoundError(RecordNotFoundError):
    """Raised when a credit id is unknown to the store."""


class PaymentNotFoundError(RecordNotFoundError):
    """Raised when a payment id is not part of the credit's ledger."""


class InvariantViolation(CreditEngineError, AssertionError):
    """Raised when generated figures break an amortization or allocation invariant."""
