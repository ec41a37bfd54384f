from .models import CreditBalance, CreditTransaction, TransactionType
from .service import CreditLedger

__all__ = [
    "CreditBalance",
    "CreditTransaction",
    "TransactionType",
    "CreditLedger",
]
