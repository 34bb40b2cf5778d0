"""Payment ledger and order balance services."""

from .balance import OrderBalanceCalculator, compute_balance, derive_payment_status
from .payments import PaymentLedger

__all__ = [
    "OrderBalanceCalculator",
    "PaymentLedger",
    "compute_balance",
    "derive_payment_status",
]
