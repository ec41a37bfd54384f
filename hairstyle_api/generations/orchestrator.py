# hairstyle_api/generations/orchestrator.py
"""
Generation orchestration:
- Validate input before touching any store or provider
- Anonymous callers go straight to the provider (no ledger, no record)
- Authenticated callers: affordability check, record, atomic debit, provider
- Any failure after the debit refunds exactly the debited cost
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import AuthUser
from ..config import Settings
from ..credits.service import CreditLedger
from ..error_handlers import (
    AppException,
    InsufficientCreditsException,
    ProviderException,
)
from ..logging_config import get_logger, log_business_event
from ..providers import InputImage, ProviderGateway
from ..providers.base import BaseImageEditProvider
from .service import GenerationRecordStore
from .validation import validate_generation_request

logger = get_logger(__name__)

REFUND_REASON_MESSAGE_LENGTH = 80
DEBIT_DESCRIPTION_PROMPT_LENGTH = 80
# Upstream messages are unbounded; callers only see this much
PROVIDER_ERROR_MESSAGE_LENGTH = 200


@dataclass
class GenerationResult:
    image: str
    provider: str
    credits: Optional[int] = None  # None for anonymous callers
    generation_id: Optional[str] = None


def _error_message(error: Exception) -> str:
    if isinstance(error, AppException):
        return error.message
    return str(error) or "Image generation failed"


def _caller_error(message: str, provider: Optional[str]) -> ProviderException:
    return ProviderException(message[:PROVIDER_ERROR_MESSAGE_LENGTH], provider=provider)


class GenerationOrchestrator:
    def __init__(self, settings: Settings, gateway: ProviderGateway, db: Optional[AsyncSession] = None):
        self.settings = settings
        self.gateway = gateway
        self.db = db

    async def generate(self, image: str, prompt: str, user: Optional[AuthUser]) -> GenerationResult:
        """
        Run one generation attempt.

        Raises:
            ValidationException: bad input (nothing was charged)
            ProviderNotConfiguredException: no provider available (nothing was charged)
            InsufficientCreditsException: balance below cost (nothing was charged)
            ProviderException: provider failed (any debit was refunded)
        """
        input_image, prompt = validate_generation_request(image, prompt, self.settings)
        provider = self.gateway.select()

        if user is None:
            return await self._generate_anonymous(input_image, prompt, provider)

        if self.db is None:
            raise RuntimeError("Authenticated generation needs a database session")

        return await self._generate_for_user(user, input_image, prompt, provider)

    async def _generate_anonymous(
        self,
        image: InputImage,
        prompt: str,
        provider: BaseImageEditProvider
    ) -> GenerationResult:
        logger.info("Anonymous generation started", extra={"extra_data": {"provider": provider.name.value}})

        result = await self.gateway.edit(image, prompt, provider=provider)
        if not result.success:
            raise _caller_error(result.error_message or "Image generation failed", result.provider)

        logger.info(
            "Anonymous generation completed",
            extra={"extra_data": {"provider": result.provider, "elapsed_ms": result.elapsed_ms}}
        )
        return GenerationResult(image=result.image, provider=result.provider)

    async def _generate_for_user(
        self,
        user: AuthUser,
        image: InputImage,
        prompt: str,
        provider: BaseImageEditProvider
    ) -> GenerationResult:
        ledger = CreditLedger(self.db)
        records = GenerationRecordStore(self.db)
        cost = self.settings.GENERATION_COST

        balance = await ledger.get_balance(user.id)
        if balance < cost:
            logger.warning(
                "Generation rejected: insufficient credits",
                extra={"user_id": user.id, "extra_data": {"required": cost, "available": balance}}
            )
            raise InsufficientCreditsException(required=cost, available=balance)

        record_id = await records.create(user.id, prompt, cost)
        log_business_event(
            "generation_started",
            user_id=user.id,
            generation_id=record_id,
            provider=provider.name.value,
            credit_cost=cost
        )

        try:
            await ledger.debit(
                user.id,
                cost,
                description=f"Generation: {prompt[:DEBIT_DESCRIPTION_PROMPT_LENGTH]}",
                reference_id=record_id
            )
        except InsufficientCreditsException:
            # Another request spent the balance between the check and the debit
            await self._mark_failed_quietly(records, record_id, "Insufficient credits")
            raise
        except AppException as e:
            await self._mark_failed_quietly(records, record_id, e.message)
            raise

        try:
            result = await self.gateway.edit(image, prompt, provider=provider)
            if not result.success:
                raise ProviderException(
                    result.error_message or "Image generation failed",
                    provider=result.provider
                )
            await records.mark_completed(record_id, result.provider, result.elapsed_ms)
        except Exception as e:
            await self._compensate(user.id, record_id, cost, e)
            failed_provider = getattr(e, "provider", None) or provider.name.value
            raise _caller_error(_error_message(e), failed_provider) from e

        credits = await ledger.get_balance(user.id)

        log_business_event(
            "generation_completed",
            user_id=user.id,
            generation_id=record_id,
            provider=result.provider,
            elapsed_ms=result.elapsed_ms,
            credits_remaining=credits
        )

        return GenerationResult(
            image=result.image,
            provider=result.provider,
            credits=credits,
            generation_id=record_id
        )

    async def _compensate(self, user_id: str, record_id: str, cost: int, error: Exception):
        """Refund the debit and close the record; never raises"""
        message = _error_message(error)

        logger.error(
            f"Generation failed: {message[:200]}",
            extra={"user_id": user_id, "extra_data": {"generation_id": record_id}}
        )

        # Discard anything half-written by the failed step before the refund commits
        await self.db.rollback()

        ledger = CreditLedger(self.db)
        try:
            await ledger.refund(
                user_id,
                cost,
                reference_id=record_id,
                reason=f"generation failed - {message[:REFUND_REASON_MESSAGE_LENGTH]}"
            )
        except Exception as refund_error:
            logger.critical(
                f"Refund failed for generation {record_id}: {str(refund_error)}",
                extra={"user_id": user_id, "extra_data": {"generation_id": record_id, "amount": cost}},
                exc_info=True
            )

        await self._mark_failed_quietly(GenerationRecordStore(self.db), record_id, message)

        log_business_event(
            "generation_failed",
            user_id=user_id,
            generation_id=record_id,
            error=message[:200]
        )

    async def _mark_failed_quietly(self, records: GenerationRecordStore, record_id: str, message: str):
        try:
            await records.mark_failed(record_id, message)
        except Exception as e:
            logger.error(
                f"Failed to mark generation {record_id} as failed: {str(e)}",
                extra={"extra_data": {"generation_id": record_id}},
                exc_info=True
            )
