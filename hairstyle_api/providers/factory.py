# hairstyle_api/providers/factory.py
import time
from typing import Any, Dict, List, Optional

import httpx

from .base import BaseImageEditProvider, ImageEditResult, InputImage
from .gemini_provider import GeminiProvider
from .wavespeed_provider import WaveSpeedProvider
from ..config import Settings
from ..error_handlers import AppException, ProviderNotConfiguredException
from ..logging_config import get_logger

logger = get_logger(__name__)


class ProviderGateway:
    """
    Ordered set of image-edit providers, primary first.

    edit() never raises for provider failures: the outcome comes back as an
    ImageEditResult and the caller branches on `success`.
    """

    def __init__(self, providers: List[BaseImageEditProvider]):
        self.providers = providers

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        stager,
        http_client: Optional[httpx.AsyncClient] = None
    ) -> "ProviderGateway":
        return cls([
            WaveSpeedProvider(wavespeed_config(settings), stager=stager, http_client=http_client),
            GeminiProvider(gemini_config(settings)),
        ])

    def select(self) -> BaseImageEditProvider:
        """
        First provider with a credential configured

        Raises:
            ProviderNotConfiguredException: no provider can be used
        """
        for provider in self.providers:
            if provider.is_configured():
                return provider
        raise ProviderNotConfiguredException()

    async def edit(
        self,
        image: InputImage,
        prompt: str,
        provider: Optional[BaseImageEditProvider] = None
    ) -> ImageEditResult:
        provider = provider or self.select()
        start_time = time.time()

        try:
            output = await provider.edit(image, prompt)
        except AppException as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.warning(
                f"Provider {provider.name.value} failed: {e.message}",
                extra={"extra_data": {"error_code": e.error_code, "elapsed_ms": elapsed_ms}}
            )
            return ImageEditResult(
                success=False,
                provider=provider.name.value,
                error_message=e.message,
                elapsed_ms=elapsed_ms
            )
        except Exception as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(
                f"Unexpected error from provider {provider.name.value}: {str(e)}",
                extra={"extra_data": {"elapsed_ms": elapsed_ms}},
                exc_info=True
            )
            return ImageEditResult(
                success=False,
                provider=provider.name.value,
                error_message=str(e) or type(e).__name__,
                elapsed_ms=elapsed_ms
            )

        return ImageEditResult(
            success=True,
            provider=provider.name.value,
            image=output,
            elapsed_ms=int((time.time() - start_time) * 1000)
        )

    async def aclose(self):
        for provider in self.providers:
            await provider.aclose()


def wavespeed_config(settings: Settings) -> Dict[str, Any]:
    return {
        "api_key": settings.WAVESPEED_API_KEY,
        "api_base": settings.WAVESPEED_API_BASE,
        "model": settings.WAVESPEED_EDIT_MODEL,
        "submit_timeout": settings.PROVIDER_SUBMIT_TIMEOUT_SECONDS,
        "poll_timeout": settings.PROVIDER_POLL_TIMEOUT_SECONDS,
        "poll_interval": settings.PROVIDER_POLL_INTERVAL_SECONDS,
        "max_poll_attempts": settings.PROVIDER_MAX_POLL_ATTEMPTS,
    }


def gemini_config(settings: Settings) -> Dict[str, Any]:
    return {
        "api_key": settings.GEMINI_API_KEY,
        "model": settings.GEMINI_IMAGE_MODEL,
        "timeout": settings.GEMINI_TIMEOUT_SECONDS,
    }
