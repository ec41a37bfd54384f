# hairstyle_api/credits/router.py
"""
Credits API
Endpoints:
- GET /credits/balance
- GET /credits/history
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import AuthUser, require_auth_user
from ..database import get_async_db
from . import schemas
from .service import CreditLedger, MAX_PAGE_SIZE

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/balance", response_model=schemas.CreditBalanceResponse)
async def get_credit_balance(
    user: Annotated[AuthUser, Depends(require_auth_user)],
    db: AsyncSession = Depends(get_async_db),
):
    """Get user's current credit balance"""
    balance = await CreditLedger(db).get_balance(user.id)
    return schemas.CreditBalanceResponse(credits=balance)


@router.get("/history", response_model=schemas.TransactionHistoryResponse)
async def get_transaction_history(
    user: Annotated[AuthUser, Depends(require_auth_user)],
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_async_db),
):
    """Get user's transaction history with pagination (newest first)"""
    limit = min(limit, MAX_PAGE_SIZE)
    ledger = CreditLedger(db)

    transactions = await ledger.list_transactions(user.id, limit=limit, offset=offset)
    total = await ledger.count_transactions(user.id)

    return schemas.TransactionHistoryResponse(
        transactions=[
            schemas.CreditTransactionResponse.model_validate(t) for t in transactions
        ],
        pagination=schemas.Pagination(limit=limit, offset=offset, total=total),
    )
