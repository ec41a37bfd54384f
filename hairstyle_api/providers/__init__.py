from .base import BaseImageEditProvider, ImageEditResult, InputImage, ProviderName, build_hairstyle_prompt
from .factory import ProviderGateway

__all__ = [
    "BaseImageEditProvider",
    "ImageEditResult",
    "InputImage",
    "ProviderGateway",
    "ProviderName",
    "build_hairstyle_prompt",
]
