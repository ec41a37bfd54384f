# hairstyle_api/providers/wavespeed_provider.py
"""
WaveSpeed image-edit provider.

The edit endpoint takes image URLs, so the input is staged in object storage
for the duration of the call. The submit request asks for synchronous mode; if
the task is not finished when submit returns, the result endpoint is polled at
a fixed interval until a terminal status or the attempt budget runs out.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from .base import BaseImageEditProvider, InputImage, ProviderName, build_hairstyle_prompt
from ..error_handlers import ProviderException, ProviderTimeoutException
from ..logging_config import get_logger
from ..monitoring import track_external_api_call

logger = get_logger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


def extract_output(data: Dict[str, Any]) -> Optional[str]:
    """First output of a task, preferring inline base64 over a hosted URL"""
    base64_outputs = data.get("base64_outputs") or []
    if base64_outputs:
        encoded = base64_outputs[0]
        if encoded.startswith("data:"):
            return encoded
        return f"data:image/png;base64,{encoded}"

    outputs = data.get("outputs") or []
    if outputs:
        return outputs[0]

    return None


class WaveSpeedProvider(BaseImageEditProvider):
    """WaveSpeed implementation (submit and poll)"""

    name = ProviderName.WAVESPEED

    def __init__(self, config: Dict[str, Any], stager, http_client: Optional[httpx.AsyncClient] = None):
        self.stager = stager
        self._http_client = http_client
        super().__init__(config)

    def _initialize_client(self):
        self.base_url = self.config.get("api_base", "https://api.wavespeed.ai/api/v3").rstrip("/")
        self.model = self.config.get("model", "google/nano-banana-pro/edit")
        self.submit_timeout = self.config.get("submit_timeout", 120.0)
        self.poll_timeout = self.config.get("poll_timeout", 30.0)
        self.poll_interval = self.config.get("poll_interval", 2.0)
        self.max_poll_attempts = self.config.get("max_poll_attempts", 60)

        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
            self._owns_client = True
        else:
            self._owns_client = False

    def is_configured(self) -> bool:
        # Inputs reach WaveSpeed by URL only, so staging must be available too
        return bool(self.config.get("api_key")) and self.stager is not None and self.stager.is_configured()

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.get('api_key')}",
            "Content-Type": "application/json",
        }

    async def edit(self, image: InputImage, prompt: str) -> str:
        full_prompt = build_hairstyle_prompt(prompt)

        async with self.stager.staged_image(image.data, image.mime_type) as image_url:
            with track_external_api_call("WaveSpeed", "submit", model=self.model):
                submitted = await self._request(
                    "POST",
                    f"{self.base_url}/{self.model}",
                    timeout=self.submit_timeout,
                    json={
                        "prompt": full_prompt,
                        "images": [image_url],
                        "resolution": "1k",
                        "output_format": "png",
                        "enable_sync_mode": True,
                        "enable_base64_output": True,
                    }
                )

            if submitted.get("status") == STATUS_COMPLETED:
                output = extract_output(submitted)
                if output:
                    logger.info("WaveSpeed task completed synchronously")
                    return output

            task_id = submitted.get("id")
            if not task_id:
                raise ProviderException(
                    "WaveSpeed API error: response did not include a task id",
                    provider=self.name.value
                )

            return await self._poll(task_id)

    async def _poll(self, task_id: str) -> str:
        url = f"{self.base_url}/predictions/{task_id}/result"

        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.poll_interval)

            data = await self._request("GET", url, timeout=self.poll_timeout)
            status = data.get("status")

            if status == STATUS_COMPLETED:
                output = extract_output(data)
                if not output:
                    raise ProviderException(
                        "Task completed but no image output found",
                        provider=self.name.value
                    )
                logger.info(
                    "WaveSpeed task completed",
                    extra={"extra_data": {"task_id": task_id, "poll_attempts": attempt}}
                )
                return output

            if status == STATUS_FAILED:
                raise ProviderException(
                    data.get("error") or "Image generation failed",
                    provider=self.name.value
                )

            logger.debug(
                f"WaveSpeed task {task_id} status: {status}",
                extra={"extra_data": {"attempt": attempt}}
            )

        logger.warning(
            "WaveSpeed poll budget exhausted",
            extra={"extra_data": {"task_id": task_id, "attempts": self.max_poll_attempts}}
        )
        raise ProviderTimeoutException(self.name.value, self.max_poll_attempts)

    async def _request(self, method: str, url: str, timeout: float, json: Optional[dict] = None) -> Dict[str, Any]:
        """Send one request and unwrap the {code, message, data} envelope"""
        try:
            response = await self._http_client.request(
                method,
                url,
                headers=self._headers,
                json=json,
                timeout=timeout
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderException(
                f"WaveSpeed API error: HTTP {e.response.status_code}: {e.response.text[:200]}",
                provider=self.name.value
            )
        except httpx.TimeoutException:
            raise ProviderException("WaveSpeed request timed out", provider=self.name.value)
        except httpx.HTTPError as e:
            raise ProviderException(f"WaveSpeed request failed: {e}", provider=self.name.value)
        except ValueError:
            raise ProviderException("WaveSpeed API error: invalid JSON response", provider=self.name.value)

        if body.get("code") != 200:
            raise ProviderException(
                f"WaveSpeed API error: {body.get('message') or 'Unknown error'}",
                provider=self.name.value
            )

        return body.get("data") or {}

    async def aclose(self):
        if self._owns_client:
            await self._http_client.aclose()
