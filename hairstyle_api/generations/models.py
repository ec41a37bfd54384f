from datetime import datetime, timezone
import enum
import uuid

from sqlalchemy import Column, String, Text, TIMESTAMP, Integer, Enum, Index
from sqlalchemy.sql import func

from ..database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationStatus(str, enum.Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationRecord(Base):
    __tablename__ = "generation_history"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    prompt = Column(Text, nullable=False)

    status = Column(
        Enum(
            GenerationStatus,
            name="generation_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=GenerationStatus.PROCESSING,
    )
    provider = Column(String, nullable=True)  # Set on completion
    credit_cost = Column(Integer, nullable=False)
    processing_time_ms = Column(Integer, nullable=True)
    error_message = Column(String(500), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), index=True)
    completed_at = Column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_generation_history_status_created", "status", "created_at"),
    )
