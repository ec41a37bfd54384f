import pytest

from hairstyle_api.error_handlers import ProviderException, ProviderNotConfiguredException
from hairstyle_api.providers import InputImage, ProviderGateway, build_hairstyle_prompt
from hairstyle_api.providers.base import ProviderName

from conftest import EDITED_IMAGE, FakeProvider

IMAGE = InputImage(mime_type="image/png", data=b"png")


class FallbackProvider(FakeProvider):
    name = ProviderName.GEMINI


def test_select_prefers_first_configured_provider():
    primary = FakeProvider(configured=True)
    fallback = FallbackProvider(configured=True)

    assert ProviderGateway([primary, fallback]).select() is primary


def test_select_falls_back_when_primary_unconfigured():
    primary = FakeProvider(configured=False)
    fallback = FallbackProvider(configured=True)

    assert ProviderGateway([primary, fallback]).select() is fallback


def test_select_raises_when_nothing_configured():
    gateway = ProviderGateway([FakeProvider(configured=False), FallbackProvider(configured=False)])

    with pytest.raises(ProviderNotConfiguredException) as exc_info:
        gateway.select()

    assert exc_info.value.message == "API key not configured. Set WAVESPEED_API_KEY or GEMINI_API_KEY."


@pytest.mark.asyncio
async def test_edit_success_is_tagged():
    gateway = ProviderGateway([FakeProvider()])

    result = await gateway.edit(IMAGE, "bangs")

    assert result.success is True
    assert result.image == EDITED_IMAGE
    assert result.provider == "wavespeed"
    assert result.error_message is None


@pytest.mark.asyncio
async def test_provider_exception_becomes_failed_result():
    gateway = ProviderGateway([FakeProvider(outcome=ProviderException("quota exceeded"))])

    result = await gateway.edit(IMAGE, "bangs")

    assert result.success is False
    assert result.error_message == "quota exceeded"
    assert result.image is None


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failed_result():
    gateway = ProviderGateway([FakeProvider(outcome=KeyError("data"))])

    result = await gateway.edit(IMAGE, "bangs")

    assert result.success is False
    assert result.error_message


def test_prompt_template_keeps_description_and_constraints():
    prompt = build_hairstyle_prompt("  silver shag  ")

    assert prompt.startswith("Change ONLY the hair. silver shag\n")
    assert "skin tone" in prompt
    assert prompt.endswith("Photorealistic, professional quality, natural lighting, high detail.")
