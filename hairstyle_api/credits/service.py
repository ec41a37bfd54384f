# hairstyle_api/credits/service.py
"""
Credit ledger service:
- Atomic conditional debit (UPDATE ... WHERE balance >= amount RETURNING)
- Single-statement upsert credit for refunds, bonuses and purchases
- Balance update and ledger entry committed in one transaction
- Idempotent refunds and signup bonuses guarded by unique indexes
- Business event logging
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CreditBalance, CreditTransaction, TransactionType
from ..database import upsert_insert
from ..logging_config import get_logger, log_business_event
from ..error_handlers import (
    DatabaseException,
    DuplicateLedgerEntryException,
    InsufficientCreditsException,
    ValidationException,
)

logger = get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 255
MAX_PAGE_SIZE = 100


def _truncate(text: Optional[str], limit: int = MAX_DESCRIPTION_LENGTH) -> Optional[str]:
    if text is None:
        return None
    return text[:limit]


class CreditLedger:
    """
    Service for credit balance operations.

    No locks are taken here: the conditional UPDATE in debit() is the only
    mutual exclusion between concurrent requests of the same user.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # READS
    # ========================================================================

    async def get_balance(self, user_id: str) -> int:
        """Current balance; a user without a balance row has 0"""
        result = await self.db.execute(
            select(CreditBalance.balance).where(CreditBalance.user_id == user_id)
        )
        balance = result.scalar_one_or_none()
        return balance if balance is not None else 0

    async def list_transactions(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> List[CreditTransaction]:
        """Transaction history, newest first"""
        limit = min(max(int(limit), 1), MAX_PAGE_SIZE)
        offset = max(int(offset), 0)

        result = await self.db.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(desc(CreditTransaction.created_at))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count_transactions(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(CreditTransaction.id)).where(CreditTransaction.user_id == user_id)
        )
        return int(result.scalar() or 0)

    async def has_refund(self, reference_id: str) -> bool:
        result = await self.db.execute(
            select(CreditTransaction.id).where(
                CreditTransaction.reference_id == reference_id,
                CreditTransaction.type == TransactionType.REFUND
            )
        )
        return result.first() is not None

    async def find_debit(self, reference_id: str) -> Optional[CreditTransaction]:
        """The generation debit linked to a generation record, if one was written"""
        result = await self.db.execute(
            select(CreditTransaction).where(
                CreditTransaction.reference_id == reference_id,
                CreditTransaction.type == TransactionType.GENERATION
            )
        )
        return result.scalars().first()

    # ========================================================================
    # WRITES
    # ========================================================================

    async def debit(
        self,
        user_id: str,
        amount: int,
        description: str,
        reference_id: Optional[str] = None
    ) -> int:
        """
        Atomically deduct credits and record the ledger entry.

        The balance check and the subtraction happen in one conditional UPDATE,
        so two concurrent debits cannot both succeed against a balance that
        only covers one of them.

        Returns:
            New balance

        Raises:
            InsufficientCreditsException: balance below amount (nothing written)
            DatabaseException: database operation failed
        """
        if amount <= 0:
            raise ValidationException("Debit amount must be positive")

        logger.info(
            f"Deducting {amount} credits",
            extra={
                "user_id": user_id,
                "extra_data": {"reference_id": reference_id}
            }
        )

        try:
            result = await self.db.execute(
                update(CreditBalance)
                .where(
                    CreditBalance.user_id == user_id,
                    CreditBalance.balance >= amount
                )
                .values(
                    balance=CreditBalance.balance - amount,
                    updated_at=datetime.now(timezone.utc)
                )
                .returning(CreditBalance.balance)
                .execution_options(synchronize_session=False)
            )
            new_balance = result.scalar_one_or_none()

            if new_balance is None:
                await self.db.rollback()
                available = await self.get_balance(user_id)
                logger.warning(
                    "Insufficient credits",
                    extra={
                        "user_id": user_id,
                        "extra_data": {
                            "required": amount,
                            "available": available,
                            "reference_id": reference_id
                        }
                    }
                )
                raise InsufficientCreditsException(required=amount, available=available)

            self.db.add(CreditTransaction(
                user_id=user_id,
                type=TransactionType.GENERATION,
                amount=-amount,  # Negative for deduction
                balance_after=new_balance,
                description=_truncate(description),
                reference_id=reference_id,
            ))
            await self.db.commit()

        except InsufficientCreditsException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Failed to deduct credits: {str(e)}",
                extra={"user_id": user_id, "extra_data": {"reference_id": reference_id}},
                exc_info=True
            )
            raise DatabaseException(
                message="Failed to deduct credits",
                original_error=e
            )

        log_business_event(
            "credits_deducted",
            user_id=user_id,
            amount=amount,
            reference_id=reference_id,
            new_balance=new_balance
        )

        return new_balance

    async def credit(
        self,
        user_id: str,
        amount: int,
        transaction_type: TransactionType,
        description: str,
        reference_id: Optional[str] = None
    ) -> int:
        """
        Add credits to a user's balance (refunds, bonuses, purchases, adjustments).

        The balance row is created on first credit. The additive upsert is a
        single statement, so concurrent credits never lose an update.

        Returns:
            New balance

        Raises:
            DuplicateLedgerEntryException: a refund/bonus for this key already exists
            DatabaseException: database operation failed
        """
        if amount <= 0:
            raise ValidationException("Credit amount must be positive")

        logger.info(
            f"Adding transaction: {amount} credits",
            extra={
                "user_id": user_id,
                "extra_data": {
                    "type": transaction_type.value,
                    "reference_id": reference_id
                }
            }
        )

        table = CreditBalance.__table__
        now = datetime.now(timezone.utc)

        try:
            stmt = upsert_insert(self.db, table).values(
                user_id=user_id,
                balance=amount,
                updated_at=now
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.user_id],
                set_={
                    "balance": table.c.balance + stmt.excluded.balance,
                    "updated_at": stmt.excluded.updated_at,
                }
            ).returning(table.c.balance)

            result = await self.db.execute(stmt)
            new_balance = result.scalar_one()

            self.db.add(CreditTransaction(
                user_id=user_id,
                type=transaction_type,
                amount=amount,
                balance_after=new_balance,
                description=_truncate(description),
                reference_id=reference_id,
            ))
            await self.db.commit()

        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Duplicate ledger entry rejected",
                extra={
                    "user_id": user_id,
                    "extra_data": {
                        "type": transaction_type.value,
                        "reference_id": reference_id,
                        "error": str(e.orig) if e.orig else str(e)
                    }
                }
            )
            raise DuplicateLedgerEntryException(
                transaction_type.value,
                reference_id or user_id
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Failed to add transaction: {str(e)}",
                extra={"user_id": user_id, "extra_data": {"reference_id": reference_id}},
                exc_info=True
            )
            raise DatabaseException(
                message="Failed to credit account",
                original_error=e
            )

        logger.info(
            f"Transaction added: {amount} credits",
            extra={
                "user_id": user_id,
                "extra_data": {"new_balance": new_balance}
            }
        )

        return new_balance

    async def refund(
        self,
        user_id: str,
        amount: int,
        reference_id: str,
        reason: str
    ) -> Optional[int]:
        """
        Return credits charged for a failed generation.

        Idempotent per generation record: a second refund for the same
        reference is rejected by the unique index and reported as None.
        """
        try:
            new_balance = await self.credit(
                user_id=user_id,
                amount=amount,
                transaction_type=TransactionType.REFUND,
                description=f"Refund: {reason}",
                reference_id=reference_id
            )
        except DuplicateLedgerEntryException:
            logger.info(
                "Generation already refunded",
                extra={"user_id": user_id, "extra_data": {"reference_id": reference_id}}
            )
            return None

        log_business_event(
            "credits_refunded",
            user_id=user_id,
            amount=amount,
            reference_id=reference_id,
            reason=reason,
            new_balance=new_balance
        )

        return new_balance

    async def grant_signup_bonus(self, user_id: str, amount: int) -> int:
        """
        Give signup bonus to a new user.

        Idempotent - won't give bonus twice.

        Returns:
            Balance after the (possibly skipped) grant
        """
        result = await self.db.execute(
            select(CreditTransaction.id).where(
                CreditTransaction.user_id == user_id,
                CreditTransaction.type == TransactionType.SIGNUP_BONUS
            )
        )
        if result.first() is not None:
            logger.info("Signup bonus already claimed", extra={"user_id": user_id})
            return await self.get_balance(user_id)

        try:
            new_balance = await self.credit(
                user_id=user_id,
                amount=amount,
                transaction_type=TransactionType.SIGNUP_BONUS,
                description=f"Welcome bonus: {amount} credits"
            )
        except DuplicateLedgerEntryException:
            # Concurrent first logins
            return await self.get_balance(user_id)

        log_business_event(
            "signup_bonus_granted",
            user_id=user_id,
            amount=amount,
            new_balance=new_balance
        )

        return new_balance
