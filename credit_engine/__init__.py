"""
Credit Lifecycle Financial Engine

Installment schedule generation with business-day resolution, ledger state
reconstruction, payment allocation with void semantics, delinquency
classification and regulatory loss provisioning. All money math uses Decimal.
"""

__version__ = "1.0.0"
