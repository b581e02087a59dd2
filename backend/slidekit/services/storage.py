"""
Object storage client (S3 compatible) and the deterministic path scheme for
export artifacts.

boto3 is blocking, so every call runs in a worker thread. Signed read URLs
are cached per storage instance for less than their lifetime.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from slidekit.config import Settings, get_settings
from slidekit.errors import StorageError
from slidekit.services.cache import TTLCache

logger = logging.getLogger(__name__)


# ============================================
# PATHS
# ============================================

def slide_file_name(index: int, extension: str) -> str:
    """Zero-based slide index → "01.png"."""
    return f"{index + 1:02d}.{extension}"


class ExportPaths:
    """Storage layout of one archive export."""

    def __init__(self, user_id: str, carousel_id: str, export_id: str):
        self.prefix = f"user/{user_id}/exports/{carousel_id}/{export_id}"

    def slide_path(self, index: int, extension: str = "png") -> str:
        return f"{self.prefix}/slides/{slide_file_name(index, extension)}"

    @property
    def zip_path(self) -> str:
        return f"{self.prefix}/carousel.zip"


class VideoRenderPaths:
    """Storage layout of one video-prep run."""

    def __init__(self, user_id: str, carousel_id: str, run_id: str):
        self.prefix = f"user/{user_id}/video-renders/{carousel_id}/{run_id}"

    def background_path(self, index: int, variant: int) -> str:
        return f"{self.prefix}/slide-{index + 1:02d}/bg-{variant}.png"

    def overlay_path(self, index: int) -> str:
        return f"{self.prefix}/slide-{index + 1:02d}/overlay.png"

    def source_path(self, index: int, variant: int) -> str:
        """Where an external background image is copied before rendering."""
        return f"{self.prefix}/slide-{index + 1:02d}/source-{variant}.jpg"


# ============================================
# CLIENT
# ============================================

class ObjectStorage:
    def __init__(self, settings: Optional[Settings] = None, client=None):
        self.settings = settings or get_settings()
        self.bucket = self.settings.storage_bucket
        self._client = client or boto3.client(
            "s3",
            endpoint_url=self.settings.storage_endpoint_url or None,
            aws_access_key_id=self.settings.storage_access_key or None,
            aws_secret_access_key=self.settings.storage_secret_key or None,
            region_name=self.settings.storage_region,
            config=BotoConfig(connect_timeout=10, read_timeout=30, retries={"max_attempts": 3}),
        )
        # Cached URLs must still be valid when handed out
        expires = self.settings.signed_url_expires
        self._url_cache = TTLCache(
            max_size=self.settings.signed_url_cache_size,
            ttl=max(1, expires - min(60, expires // 2)),
        )

    async def upload(self, path: str, data: bytes, content_type: str, upsert: bool = True) -> str:
        """Store bytes under path. With upsert=False an existing object is an error."""

        def _put():
            if not upsert and self._exists(path):
                raise StorageError(f"Object already exists: {path}")
            self._client.put_object(Bucket=self.bucket, Key=path, Body=data, ContentType=content_type)

        try:
            await asyncio.to_thread(_put)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Upload failed for {path}: {e}")
            raise StorageError(f"Upload failed for {path.rsplit('/', 1)[-1]}") from e
        # Any cached URL still points at the right key, but drop it for freshness
        self._url_cache.delete(("inline", path))
        logger.debug(f"Uploaded {len(data)} bytes to {path}")
        return path

    async def _require(self, path: str) -> None:
        try:
            found = await asyncio.to_thread(self._exists, path)
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Could not check {path}: {e}")
            raise StorageError(f"Could not check {path.rsplit('/', 1)[-1]}") from e
        if not found:
            raise StorageError(f"Object not found: {path.rsplit('/', 1)[-1]}")

    def _exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=path)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    async def signed_url(
        self,
        path: str,
        expires: Optional[int] = None,
        download_name: Optional[str] = None,
        check_exists: bool = False,
    ) -> str:
        """
        Time-boxed read URL for a stored path.

        Signing is local and succeeds for any key; pass check_exists=True to
        HEAD the object first and get StorageError when it is missing.
        """
        if check_exists:
            await self._require(path)

        kind = ("download", download_name) if download_name else ("inline",)
        key = (*kind, path)
        use_cache = expires is None
        if use_cache:
            cached = self._url_cache.get(key)
            if cached:
                return cached

        params = {"Bucket": self.bucket, "Key": path}
        if download_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{download_name}"'

        try:
            url = await asyncio.to_thread(
                self._client.generate_presigned_url,
                "get_object",
                Params=params,
                ExpiresIn=expires or self.settings.signed_url_expires,
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Could not sign {path}: {e}")
            raise StorageError(f"Could not sign {path.rsplit('/', 1)[-1]}") from e

        if use_cache:
            self._url_cache.set(key, url)
        return url

    def owns_url(self, url: str) -> bool:
        """True when url points into this bucket (a URL we signed earlier)."""
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        endpoint = urlparse(self.settings.storage_endpoint_url).hostname if self.settings.storage_endpoint_url else None
        if endpoint:
            endpoint = endpoint.lower()
            if host == endpoint:
                return parsed.path.startswith(f"/{self.bucket}/")
            return host == f"{self.bucket}.{endpoint}"
        return host.startswith(f"{self.bucket}.s3") and host.endswith("amazonaws.com")
