"""
Stream host API client

Wraps the external video hosting/transcoding API: creating video slots,
reading transcoding state, deleting assets, and signing TUS upload
credentials. Creation and reads raise UpstreamUnavailableError, except
that reading a missing video raises NotFoundError. Deletion is best-effort
and reports success as a bool.
"""

import asyncio
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import aiohttp

from reelpipe.core.config import settings
from reelpipe.core.exceptions import NotFoundError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


def sign_upload(library_id: str, api_key: str, expires_at: int, video_id: str) -> str:
    """TUS authorization signature for one video slot"""
    payload = f"{library_id}{api_key}{expires_at}{video_id}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def verify_upload_signature(
    signature: str,
    library_id: str,
    api_key: str,
    expires_at: int,
    video_id: str,
) -> bool:
    """Check a presented signature against the video id it is presented with"""
    expected = sign_upload(library_id, api_key, expires_at, video_id)
    return hmac.compare_digest(expected, signature or "")


class StreamHostClient:
    """Async client for the stream host REST API"""

    def __init__(
        self,
        api_url: str = None,
        api_key: str = None,
        library_id: str = None,
        timeout_seconds: float = None,
    ):
        self.api_url = (api_url or settings.stream_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.stream_api_key
        self.library_id = library_id if library_id is not None else settings.stream_library_id
        self.timeout_seconds = timeout_seconds or settings.stream_request_timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.library_id)

    def _headers(self) -> Dict[str, str]:
        return {
            "AccessKey": self.api_key or "",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _videos_url(self, video_id: Optional[str] = None) -> str:
        url = f"{self.api_url}/library/{self.library_id}/videos"
        return f"{url}/{video_id}" if video_id else url

    def _require_config(self):
        if not self.is_configured:
            logger.error("Stream host API is not configured")
            raise UpstreamUnavailableError("Video storage is not configured.")

    async def create_video(self, title: str, collection_id: Optional[str] = None) -> str:
        """Create an empty video slot and return its guid"""
        self._require_config()
        body: Dict[str, Any] = {"title": title}
        if collection_id:
            body["collectionId"] = collection_id

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self._videos_url(), json=body, headers=self._headers()) as response:
                    if response.status >= 400:
                        logger.error(f"Stream host rejected video creation: status={response.status}")
                        raise UpstreamUnavailableError("Failed to initialize video upload.")
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Stream host unreachable while creating video: {e}")
            raise UpstreamUnavailableError("Failed to initialize video upload.") from e

        guid = data.get("guid") if isinstance(data, dict) else None
        if not guid:
            logger.error(f"Stream host response missing guid: {data}")
            raise UpstreamUnavailableError("Failed to initialize video upload.")

        logger.info(f"Stream host video created: guid={guid}, collection={collection_id}")
        return guid

    async def get_video(self, video_id: str) -> Dict[str, Any]:
        """Fetch transcoding state and metadata for one video"""
        self._require_config()
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self._videos_url(video_id), headers=self._headers()) as response:
                    if response.status == 404:
                        logger.warning(f"Stream host has no video {video_id}")
                        raise NotFoundError("Video not found on the stream host.")
                    if response.status >= 400:
                        logger.warning(f"Stream host status lookup failed: guid={video_id}, status={response.status}")
                        raise UpstreamUnavailableError("Failed to fetch video status.")
                    return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Stream host unreachable while fetching {video_id}: {e}")
            raise UpstreamUnavailableError("Failed to fetch video status.") from e

    async def delete_video(self, video_id: str) -> bool:
        """Delete an upstream asset. Never raises"""
        if not self.is_configured:
            logger.warning(f"Skipping upstream delete of {video_id}: stream host not configured")
            return False

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.delete(self._videos_url(video_id), headers=self._headers()) as response:
                    if response.status >= 400 and response.status != 404:
                        logger.error(f"Stream host delete failed: guid={video_id}, status={response.status}")
                        return False
                    return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Stream host delete error for {video_id}: {e}")
            return False

    def sign(self, video_id: str, expires_at: int) -> str:
        self._require_config()
        return sign_upload(self.library_id, self.api_key, expires_at, video_id)

    def download_url(self, video_id: str, expires_at: int) -> str:
        """Signed link to the original upload, valid until `expires_at` (unix seconds)"""
        token = self.sign(video_id, expires_at)
        if settings.stream_cdn_hostname:
            return f"https://{settings.stream_cdn_hostname}/{video_id}/original?token={token}&expires={expires_at}"
        return f"{self._videos_url(video_id)}?token={token}&expires={expires_at}"

    def thumbnail_url(self, video_id: str, file_name: Optional[str] = None) -> Optional[str]:
        if not settings.stream_cdn_hostname:
            return None
        return f"https://{settings.stream_cdn_hostname}/{video_id}/{file_name or 'thumbnail.jpg'}"

    def streaming_url(self, video_id: str) -> str:
        return f"{settings.stream_embed_url.rstrip('/')}/{self.library_id}/{video_id}"


def get_stream_host() -> StreamHostClient:
    """FastAPI dependency"""
    return StreamHostClient()
