from datetime import datetime, timezone
import enum
import uuid

from sqlalchemy import Column, String, TIMESTAMP, Integer, Enum, Index, CheckConstraint, text
from sqlalchemy.sql import func

from ..database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, enum.Enum):
    GENERATION = "generation"
    REFUND = "refund"
    PURCHASE = "purchase"
    SIGNUP_BONUS = "signup_bonus"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class CreditBalance(Base):
    __tablename__ = "credit_balance"

    user_id = Column(String, primary_key=True)
    balance = Column(Integer, nullable=False, default=0, server_default='0')
    updated_at = Column(TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_credit_balance_non_negative"),
    )


class CreditTransaction(Base):
    """Append-only ledger entry; sum(amount) per user equals credit_balance.balance"""
    __tablename__ = "credit_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)

    type = Column(
        Enum(
            TransactionType,
            name="credit_transaction_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    amount = Column(Integer, nullable=False)  # Positive for credit, negative for debit
    balance_after = Column(Integer, nullable=False)

    description = Column(String(255), nullable=True)
    reference_id = Column(String, nullable=True, index=True)  # generation_history.id

    created_at = Column(TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), index=True)

    __table_args__ = (
        # At most one refund per generation record
        Index(
            "uq_credit_transactions_refund_reference",
            "reference_id",
            unique=True,
            postgresql_where=text("type = 'refund'"),
            sqlite_where=text("type = 'refund'"),
        ),
        # At most one signup bonus per user
        Index(
            "uq_credit_transactions_signup_bonus",
            "user_id",
            unique=True,
            postgresql_where=text("type = 'signup_bonus'"),
            sqlite_where=text("type = 'signup_bonus'"),
        ),
    )
