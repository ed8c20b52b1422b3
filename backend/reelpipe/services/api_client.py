"""
Async client for the reelpipe HTTP API

Error bodies ({"code", "detail"}) are turned back into the matching
ReelpipeError subclass; connection failures and timeouts surface as
UpstreamUnavailableError.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from reelpipe.core.config import settings
from reelpipe.core.exceptions import UpstreamUnavailableError, error_from_payload

logger = logging.getLogger(__name__)


class ReelpipeAPIClient:
    def __init__(self, base_url: str = None, token: str = None, timeout_seconds: float = 30):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers())
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, timeout_seconds: float = None, **kwargs) -> Any:
        url = f"{self.base_url}/api/v1{path}"
        timeout = aiohttp.ClientTimeout(total=timeout_seconds or self.timeout_seconds)
        session = await self._get_session()
        try:
            async with session.request(method, url, timeout=timeout, **kwargs) as response:
                if response.status >= 400:
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError:
                        payload = {}
                    error = error_from_payload(payload, response.status)
                    logger.debug(f"{method} {path} -> {response.status} {error.code.value}")
                    raise error
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"{method} {path} failed: {e!r}")
            raise UpstreamUnavailableError(f"API request failed: {e or type(e).__name__}") from e

    async def create_upload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/videos/uploads", json=payload)

    async def list_videos(self, project_id: str, status: str = None, limit: int = 20,
                          cursor: str = None) -> Dict[str, Any]:
        params = {"project_id": project_id, "limit": limit}
        if status:
            params["status"] = status
        if cursor:
            params["cursor"] = cursor
        return await self._request("GET", "/videos", params=params)

    async def get_video(self, video_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/videos/{video_id}")

    async def update_video(self, video_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/videos/{video_id}", json=changes)

    async def get_playback(self, video_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/videos/{video_id}/playback")

    async def get_download(self, video_id: str, expires_in: int = None) -> Dict[str, Any]:
        params = {"expires_in": expires_in} if expires_in else None
        return await self._request("GET", f"/videos/{video_id}/download", params=params)

    async def get_status(self, video_id: str, timeout_seconds: float = None) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/videos/{video_id}/status",
            timeout_seconds=timeout_seconds or settings.poll_timeout_seconds,
        )

    async def delete_video(self, video_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/videos/{video_id}")

    async def bulk_delete(self, video_ids: List[str]) -> Dict[str, Any]:
        return await self._request("POST", "/videos/bulk-delete", json={"ids": video_ids})

    async def list_projects(self) -> Dict[str, Any]:
        return await self._request("GET", "/projects")

    async def get_project(self, project_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/projects/{project_id}")
