# hairstyle_api/generations/service.py
"""
Generation record store: audit log of every authenticated generation attempt.

Lifecycle is processing -> completed | failed. Terminal updates only match
rows still in processing, so the terminal state is written exactly once.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import GenerationRecord, GenerationStatus
from ..error_handlers import DatabaseException
from ..logging_config import get_logger

logger = get_logger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 500


class GenerationRecordStore:
    """Persistence for GenerationRecord rows, independent of the ledger"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_id: str, prompt: str, cost: int) -> str:
        """Insert a record in processing state and return its id"""
        record = GenerationRecord(
            user_id=user_id,
            prompt=prompt.strip(),
            status=GenerationStatus.PROCESSING,
            credit_cost=cost,
        )
        try:
            self.db.add(record)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Failed to create generation record: {str(e)}",
                extra={"user_id": user_id},
                exc_info=True
            )
            raise DatabaseException(
                message="Failed to create generation record",
                original_error=e
            )

        logger.info(
            f"Generation record created: {record.id}",
            extra={"user_id": user_id, "extra_data": {"credit_cost": cost}}
        )
        return record.id

    async def get(self, record_id: str) -> Optional[GenerationRecord]:
        result = await self.db.execute(
            select(GenerationRecord).where(GenerationRecord.id == record_id)
            # Terminal updates bypass the identity map
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_completed(self, record_id: str, provider: str, elapsed_ms: int) -> bool:
        return await self._finish(
            record_id,
            status=GenerationStatus.COMPLETED,
            provider=provider,
            processing_time_ms=elapsed_ms,
        )

    async def mark_failed(self, record_id: str, error_message: str) -> bool:
        message = (error_message or "Unknown error")[:MAX_ERROR_MESSAGE_LENGTH]
        return await self._finish(
            record_id,
            status=GenerationStatus.FAILED,
            error_message=message,
        )

    async def _finish(self, record_id: str, **values) -> bool:
        """Write the terminal state; False if the record already left processing"""
        try:
            result = await self.db.execute(
                update(GenerationRecord)
                .where(
                    GenerationRecord.id == record_id,
                    GenerationRecord.status == GenerationStatus.PROCESSING
                )
                .values(completed_at=datetime.now(timezone.utc), **values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Failed to update generation record: {str(e)}",
                extra={"extra_data": {"generation_id": record_id, "status": values["status"].value}},
                exc_info=True
            )
            raise DatabaseException(
                message="Failed to update generation record",
                original_error=e
            )

        if result.rowcount == 0:
            logger.warning(
                "Generation record already in terminal state",
                extra={"extra_data": {"generation_id": record_id, "status": values["status"].value}}
            )
            return False
        return True

    async def list_for_user(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> List[GenerationRecord]:
        result = await self.db.execute(
            select(GenerationRecord)
            .where(GenerationRecord.user_id == user_id)
            .order_by(desc(GenerationRecord.created_at))
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_stale_processing(
        self,
        older_than: datetime,
        limit: int = 100
    ) -> List[GenerationRecord]:
        """Records stuck in processing since before `older_than` (crash leftovers)"""
        result = await self.db.execute(
            select(GenerationRecord)
            .where(
                GenerationRecord.status == GenerationStatus.PROCESSING,
                GenerationRecord.created_at < older_than
            )
            .order_by(GenerationRecord.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_for_user(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(GenerationRecord.id)).where(GenerationRecord.user_id == user_id)
        )
        return int(result.scalar() or 0)
