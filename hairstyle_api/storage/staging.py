# hairstyle_api/storage/staging.py
"""
Temporary staging of input images at a publicly fetchable URL.

The primary edit provider consumes image URLs, not inline bytes. A staged
object belongs to the single request that created it and is deleted on
every exit path through `staged_image()`.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from ..error_handlers import StagingException
from ..logging_config import get_logger

logger = get_logger(__name__)

PRESIGNED_URL_TTL_SECONDS = 600


class S3ImageStager:
    def __init__(self, settings: Settings, s3_client=None):
        self.bucket_name = settings.S3_BUCKET_NAME
        self.region = settings.AWS_REGION
        self.prefix = settings.S3_STAGING_PREFIX.strip("/")
        self.public_base_url = settings.S3_PUBLIC_BASE_URL.rstrip("/") if settings.S3_PUBLIC_BASE_URL else None

        if s3_client is not None:
            self.s3_client = s3_client
        elif self.bucket_name:
            # Credentials fall back to the default boto3 chain (IAM role, env) when unset
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.AWS_REGION
            )
        else:
            self.s3_client = None

    def is_configured(self) -> bool:
        return self.s3_client is not None and bool(self.bucket_name)

    def _object_key(self, content_type: str) -> str:
        ext = content_type.split("/")[-1] if "/" in content_type else "png"
        return f"{self.prefix}/{uuid.uuid4().hex}.{ext or 'png'}"

    def _public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return self.s3_client.generate_presigned_url(
            'get_object',
            Params={'Bucket': self.bucket_name, 'Key': key},
            ExpiresIn=PRESIGNED_URL_TTL_SECONDS
        )

    def _key_from_url(self, url: str) -> str:
        if self.public_base_url and url.startswith(self.public_base_url + "/"):
            return url[len(self.public_base_url) + 1:]
        path = urlparse(url).path.lstrip("/")
        # Path-style S3 URLs carry the bucket as first segment
        if path.startswith(f"{self.bucket_name}/"):
            path = path[len(self.bucket_name) + 1:]
        return path

    def _put_sync(self, data: bytes, content_type: str) -> str:
        key = self._object_key(content_type)
        self.s3_client.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        return self._public_url(key)

    async def put(self, data: bytes, content_type: str) -> str:
        """Upload bytes and return a URL the provider can fetch"""
        if not self.is_configured():
            raise StagingException("Image staging is not configured. Set S3_BUCKET_NAME.")

        try:
            # boto3 is blocking; keep it off the event loop
            url = await asyncio.to_thread(self._put_sync, data, content_type)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to stage input image: {e}", exc_info=True)
            raise StagingException("Failed to upload input image", original_error=e)

        logger.info(
            "Input image staged",
            extra={"extra_data": {"bytes": len(data), "content_type": content_type}}
        )
        return url

    async def delete(self, url: str) -> None:
        """Remove a staged object; failures are logged, never raised"""
        if not self.is_configured():
            return
        key = self._key_from_url(url)
        try:
            await asyncio.to_thread(
                self.s3_client.delete_object,
                Bucket=self.bucket_name,
                Key=key
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning(
                f"Failed to clean up staged image: {e}",
                extra={"extra_data": {"key": key}}
            )

    @asynccontextmanager
    async def staged_image(self, data: bytes, content_type: str) -> AsyncIterator[str]:
        url = await self.put(data, content_type)
        try:
            yield url
        finally:
            await self.delete(url)


def build_stager(settings: Settings) -> S3ImageStager:
    stager = S3ImageStager(settings)
    if not stager.is_configured():
        logger.warning("S3_BUCKET_NAME not configured; image staging disabled")
    return stager
