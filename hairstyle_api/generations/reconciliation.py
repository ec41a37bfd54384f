# hairstyle_api/generations/reconciliation.py
"""
Reconciliation sweep for abandoned generations.

A process that dies between the debit and the refund leaves its record in
`processing` with the credits spent. The sweep finds such records once they
are older than the provider ceiling, refunds the debit (at most once, the
refund unique index still applies) and marks them failed.

Run periodically:
    python -m hairstyle_api.generations.reconciliation
"""

import argparse
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, settings as default_settings
from ..credits.service import CreditLedger
from ..database import Database
from ..logging_config import get_logger, log_business_event, setup_logging
from .service import GenerationRecordStore

logger = get_logger(__name__)

ABANDONED_MESSAGE = "Generation abandoned"


async def reconcile_abandoned_generations(
    db: AsyncSession,
    settings: Settings,
    now: Optional[datetime] = None,
    batch_size: int = 100
) -> Dict[str, int]:
    """
    Refund and fail `processing` records older than the grace period.

    Returns:
        Statistics: examined, refunded, marked_failed, errors
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=settings.RECONCILIATION_GRACE_SECONDS)

    records = GenerationRecordStore(db)
    ledger = CreditLedger(db)
    stats = {"examined": 0, "refunded": 0, "marked_failed": 0, "errors": 0}

    stale = await records.find_stale_processing(cutoff, limit=batch_size)
    logger.info(
        f"Found {len(stale)} abandoned generations",
        extra={"extra_data": {"cutoff": cutoff.isoformat()}}
    )

    for record in stale:
        stats["examined"] += 1
        try:
            debit = await ledger.find_debit(record.id)

            # No debit means the attempt died before charging; nothing to return
            if debit is not None and not await ledger.has_refund(record.id):
                new_balance = await ledger.refund(
                    record.user_id,
                    -debit.amount,
                    reference_id=record.id,
                    reason="generation abandoned"
                )
                if new_balance is not None:
                    stats["refunded"] += 1

            if await records.mark_failed(record.id, ABANDONED_MESSAGE):
                stats["marked_failed"] += 1

        except Exception as e:
            stats["errors"] += 1
            await db.rollback()
            logger.error(
                f"Failed to reconcile generation {record.id}: {str(e)}",
                extra={"user_id": record.user_id, "extra_data": {"generation_id": record.id}},
                exc_info=True
            )

    log_business_event("generations_reconciled", **stats)
    return stats


async def run_sweep(settings: Settings, batch_size: int) -> Dict[str, int]:
    database = Database.from_settings(settings)
    try:
        async with database.session() as db:
            return await reconcile_abandoned_generations(db, settings, batch_size=batch_size)
    finally:
        await database.dispose()


def main():
    parser = argparse.ArgumentParser(description="Refund and close abandoned hairstyle generations")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Maximum number of records to reconcile in one run"
    )
    args = parser.parse_args()

    setup_logging()
    stats = asyncio.run(run_sweep(default_settings, args.batch_size))

    print("\n" + "=" * 60)
    print("RECONCILIATION COMPLETE")
    print("=" * 60)
    for key, value in stats.items():
        print(f"{key:20s}: {value}")
    print("=" * 60)


if __name__ == "__main__":
    main()
