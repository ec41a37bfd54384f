# hairstyle_api/providers/gemini_provider.py
import base64
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .base import BaseImageEditProvider, InputImage, ProviderName, build_hairstyle_prompt
from ..error_handlers import ProviderException
from ..logging_config import get_logger
from ..monitoring import track_external_api_call

logger = get_logger(__name__)


class GeminiProvider(BaseImageEditProvider):
    """Gemini implementation (single generate_content call)"""

    name = ProviderName.GEMINI

    def _initialize_client(self):
        self.model = self.config.get("model", "gemini-2.0-flash-exp")
        timeout_seconds = self.config.get("timeout", 60.0)

        if self.config.get("client") is not None:
            self.client = self.config["client"]
        elif self.is_configured():
            self.client = genai.Client(
                api_key=self.config["api_key"],
                http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000))
            )
        else:
            self.client = None

    def is_configured(self) -> bool:
        return bool(self.config.get("api_key")) or self.config.get("client") is not None

    async def edit(self, image: InputImage, prompt: str) -> str:
        full_prompt = build_hairstyle_prompt(prompt)

        try:
            with track_external_api_call("Gemini", "generate_content", model=self.model):
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=[
                        full_prompt,
                        types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
                    ],
                    config=types.GenerateContentConfig(
                        response_modalities=["TEXT", "IMAGE"]
                    )
                )
        except genai_errors.APIError as e:
            raise ProviderException(
                f"Gemini API error: {e.message or e.status or e.code}",
                provider=self.name.value
            )

        return self._extract_image(response)

    def _extract_image(self, response: Any) -> str:
        candidates = response.candidates or []
        if not candidates:
            raise ProviderException("No results generated by Gemini", provider=self.name.value)

        content = candidates[0].content
        for part in (content.parts if content and content.parts else []):
            inline = part.inline_data
            if inline is not None and inline.data:
                encoded = base64.b64encode(inline.data).decode("ascii")
                return f"data:{inline.mime_type or 'image/png'};base64,{encoded}"

        raise ProviderException("No image generated by Gemini", provider=self.name.value)

