# hairstyle_api/providers/base.py
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from enum import Enum
from dataclasses import dataclass


class ProviderName(str, Enum):
    WAVESPEED = "wavespeed"
    GEMINI = "gemini"


@dataclass
class InputImage:
    """Decoded input image"""
    mime_type: str  # e.g. image/jpeg
    data: bytes


@dataclass
class ImageEditResult:
    """Standardized outcome of one edit attempt"""
    success: bool
    provider: str
    image: Optional[str] = None  # data URL or https URL
    error_message: Optional[str] = None
    elapsed_ms: int = 0


HAIRSTYLE_PROMPT_TEMPLATE = (
    "Change ONLY the hair. {description}\n"
    "Keep the person's face, facial features, skin tone, lighting, background, "
    "clothing, expression and pose exactly the same.\n"
    "Photorealistic, professional quality, natural lighting, high detail."
)


def build_hairstyle_prompt(description: str) -> str:
    """Wrap the user's description so the model edits the hair and nothing else"""
    return HAIRSTYLE_PROMPT_TEMPLATE.format(description=description.strip())


class BaseImageEditProvider(ABC):
    """Abstract base class for image-edit providers"""

    name: ProviderName

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self._initialize_client()

    @abstractmethod
    def _initialize_client(self):
        """Initialize provider-specific client"""
        pass

    def is_configured(self) -> bool:
        return bool(self.config.get("api_key"))

    @abstractmethod
    async def edit(self, image: InputImage, prompt: str) -> str:
        """
        Apply a hairstyle edit to the image

        Args:
            image: Decoded input image
            prompt: User's hairstyle description (untemplated)

        Returns:
            Edited image as a data URL or https URL

        Raises:
            ProviderException: provider rejected, failed or produced no image
        """
        pass

    async def aclose(self):
        """Release network clients held by the provider"""
        pass
