import json
from contextlib import asynccontextmanager

import httpx
import pytest

from hairstyle_api.error_handlers import ErrorCode, ProviderException, ProviderTimeoutException
from hairstyle_api.providers.base import InputImage
from hairstyle_api.providers.wavespeed_provider import WaveSpeedProvider, extract_output

API_BASE = "https://wavespeed.test/api/v3"
STAGED_URL = "https://bucket.test/hairstyle-input/abc.png"


class RecordingStager:
    def __init__(self):
        self.staged = []
        self.deleted = []

    def is_configured(self):
        return True

    @asynccontextmanager
    async def staged_image(self, data, content_type):
        self.staged.append((data, content_type))
        try:
            yield STAGED_URL
        finally:
            self.deleted.append(STAGED_URL)


def envelope(data, code=200, message="success"):
    return httpx.Response(200, json={"code": code, "message": message, "data": data})


def make_provider(handler, max_poll_attempts=5):
    stager = RecordingStager()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = WaveSpeedProvider(
        {
            "api_key": "ws-key",
            "api_base": API_BASE,
            "poll_interval": 0,
            "max_poll_attempts": max_poll_attempts,
        },
        stager=stager,
        http_client=client,
    )
    return provider, stager


IMAGE = InputImage(mime_type="image/jpeg", data=b"jpeg-bytes")


@pytest.mark.asyncio
async def test_synchronous_completion_returns_inline_image():
    requests = []

    def handler(request):
        requests.append(request)
        return envelope({"id": "task-1", "status": "completed", "base64_outputs": ["QUJD"]})

    provider, stager = make_provider(handler)

    result = await provider.edit(IMAGE, "short bob")

    assert result == "data:image/png;base64,QUJD"
    assert len(requests) == 1
    submit = requests[0]
    assert str(submit.url) == f"{API_BASE}/google/nano-banana-pro/edit"
    assert submit.headers["authorization"] == "Bearer ws-key"
    body = json.loads(submit.content)
    assert body["images"] == [STAGED_URL]
    assert body["resolution"] == "1k"
    assert body["output_format"] == "png"
    assert body["enable_sync_mode"] is True
    assert body["enable_base64_output"] is True
    assert body["prompt"].startswith("Change ONLY the hair. short bob")
    assert stager.staged == [(b"jpeg-bytes", "image/jpeg")]
    assert stager.deleted == [STAGED_URL]


@pytest.mark.asyncio
async def test_completion_after_polling():
    polls = []

    def handler(request):
        if request.method == "POST":
            return envelope({"id": "task-2", "status": "processing"})
        polls.append(str(request.url))
        if len(polls) < 3:
            return envelope({"id": "task-2", "status": "processing"})
        return envelope({"id": "task-2", "status": "completed", "outputs": ["https://cdn.test/out.png"]})

    provider, stager = make_provider(handler)

    result = await provider.edit(IMAGE, "long waves")

    assert result == "https://cdn.test/out.png"
    assert polls == [f"{API_BASE}/predictions/task-2/result"] * 3
    assert stager.deleted == [STAGED_URL]


@pytest.mark.asyncio
async def test_poll_budget_exhausted_times_out():
    polls = []

    def handler(request):
        if request.method == "GET":
            polls.append(request)
        return envelope({"id": "task-3", "status": "processing"})

    provider, stager = make_provider(handler, max_poll_attempts=4)

    with pytest.raises(ProviderTimeoutException) as exc_info:
        await provider.edit(IMAGE, "braids")

    assert len(polls) == 4
    assert exc_info.value.error_code == ErrorCode.PROVIDER_TIMEOUT
    assert exc_info.value.message == "Timeout waiting for image generation result"
    assert stager.deleted == [STAGED_URL]


@pytest.mark.asyncio
async def test_failed_task_raises_immediately():
    polls = []

    def handler(request):
        if request.method == "POST":
            return envelope({"id": "task-4", "status": "created"})
        polls.append(request)
        return envelope({"id": "task-4", "status": "failed", "error": "NSFW content detected"})

    provider, stager = make_provider(handler)

    with pytest.raises(ProviderException, match="NSFW content detected"):
        await provider.edit(IMAGE, "undercut")

    assert len(polls) == 1
    assert stager.deleted == [STAGED_URL]


@pytest.mark.asyncio
async def test_completed_without_output_is_an_error():
    def handler(request):
        if request.method == "POST":
            return envelope({"id": "task-5", "status": "created"})
        return envelope({"id": "task-5", "status": "completed", "outputs": []})

    provider, _ = make_provider(handler)

    with pytest.raises(ProviderException, match="no image output found"):
        await provider.edit(IMAGE, "afro")


@pytest.mark.asyncio
async def test_error_envelope_is_rejected():
    def handler(request):
        return envelope(None, code=401, message="Invalid API key")

    provider, stager = make_provider(handler)

    with pytest.raises(ProviderException, match="WaveSpeed API error: Invalid API key"):
        await provider.edit(IMAGE, "fade")

    assert stager.deleted == [STAGED_URL]


@pytest.mark.asyncio
async def test_http_error_status_is_wrapped():
    def handler(request):
        return httpx.Response(503, text="upstream unavailable")

    provider, _ = make_provider(handler)

    with pytest.raises(ProviderException, match="HTTP 503"):
        await provider.edit(IMAGE, "fade")


@pytest.mark.asyncio
async def test_transport_error_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider, _ = make_provider(handler)

    with pytest.raises(ProviderException, match="WaveSpeed request failed"):
        await provider.edit(IMAGE, "fade")


def test_not_configured_without_key():
    provider = WaveSpeedProvider({"api_key": None}, stager=RecordingStager(), http_client=httpx.AsyncClient())
    assert provider.is_configured() is False


def test_extract_output_prefers_inline_base64():
    data = {"base64_outputs": ["AAAA"], "outputs": ["https://cdn.test/x.png"]}
    assert extract_output(data) == "data:image/png;base64,AAAA"
    assert extract_output({"outputs": ["https://cdn.test/x.png"]}) == "https://cdn.test/x.png"
    assert extract_output({}) is None
