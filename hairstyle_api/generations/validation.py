# hairstyle_api/generations/validation.py
"""
Request validation for generations. Everything here runs before any ledger,
record or provider interaction.
"""

import base64
import binascii
import re
from typing import Tuple

from ..config import Settings
from ..error_handlers import ErrorCode, ValidationException
from ..providers.base import InputImage

DATA_URL_PATTERN = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)

INVALID_IMAGE_FORMAT = "Invalid image format. Expected base64-encoded data URL"


def estimate_decoded_size(image: str) -> int:
    """Decoded byte size of a base64 payload, without decoding it"""
    payload = image.split(",", 1)[1] if "," in image else image
    payload = payload.strip()
    padding = payload[-2:].count("=")
    return max((len(payload) * 3) // 4 - padding, 0)


def parse_data_url(image: str) -> InputImage:
    match = DATA_URL_PATTERN.match(image.strip())
    if not match:
        raise ValidationException(INVALID_IMAGE_FORMAT, error_code=ErrorCode.INVALID_IMAGE)

    mime_type, payload = match.groups()
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationException(INVALID_IMAGE_FORMAT, error_code=ErrorCode.INVALID_IMAGE)

    if not data:
        raise ValidationException(INVALID_IMAGE_FORMAT, error_code=ErrorCode.INVALID_IMAGE)

    return InputImage(mime_type=mime_type, data=data)


def validate_generation_request(image: str, prompt: str, settings: Settings) -> Tuple[InputImage, str]:
    """
    Check a generation request and decode its image.

    Returns:
        (decoded image, trimmed prompt)

    Raises:
        ValidationException: first failed check, in the order the client expects
    """
    if not image or not image.strip():
        raise ValidationException("Image is required")

    prompt = (prompt or "").strip()
    if not prompt:
        raise ValidationException("Prompt is required")

    if len(prompt) > settings.MAX_PROMPT_LENGTH:
        raise ValidationException(
            "Prompt is too long",
            details={"max_length": settings.MAX_PROMPT_LENGTH, "length": len(prompt)}
        )

    size = estimate_decoded_size(image)
    if size > settings.MAX_IMAGE_SIZE_BYTES:
        raise ValidationException(
            f"Image is too large. Maximum size is {settings.MAX_IMAGE_SIZE_MB}MB, "
            f"got {size / (1024 * 1024):.2f}MB",
            error_code=ErrorCode.IMAGE_TOO_LARGE
        )

    return parse_data_url(image), prompt
