from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from .models import TransactionType


class CreditBalanceResponse(BaseModel):
    success: bool = True
    credits: int


class CreditTransactionResponse(BaseModel):
    id: str
    type: TransactionType
    amount: int
    balance_after: int
    description: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int


class TransactionHistoryResponse(BaseModel):
    success: bool = True
    transactions: List[CreditTransactionResponse]
    pagination: Pagination
