"""
Resumable upload client (TUS 1.0.0)

Pushes a local file to the stream host using an issued upload credential.
The transfer is chunked; every PATCH is acknowledged with Upload-Offset and
an interrupted upload resumes from the last acknowledged byte. The client
never touches the video's status: the stream host moves it forward once
the bytes arrive.
"""

import asyncio
import base64
import io
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, BinaryIO, Callable, Dict, Optional, Union
from urllib.parse import urljoin

import aiohttp

from reelpipe.core.config import settings
from reelpipe.core.constants import TUS_VERSION
from reelpipe.core.exceptions import (
    ExpiredCredentialError, PermissionDeniedError, UploadFailedError, UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
UploadSource = Union[str, os.PathLike, bytes]

RETRYABLE_STATUSES = {423, 429}


class _TransientError(Exception):
    """Connection drop, timeout or a retryable status; worth another attempt"""


class _OffsetConflict(Exception):
    """409: our offset disagrees with the server's"""


@dataclass
class UploadCredential:
    endpoint: str
    auth_signature: str
    auth_expire: int
    video_id: str
    library_id: str
    mime_type: str
    title: str

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "UploadCredential":
        """Build from the body returned by POST /videos/uploads"""
        upload = data["upload"]
        headers = upload["headers"]
        metadata = upload["metadata"]
        return cls(
            endpoint=upload["endpoint"],
            auth_signature=headers["auth_signature"],
            auth_expire=int(headers["auth_expire"]),
            video_id=headers["video_id"],
            library_id=str(headers["library_id"]),
            mime_type=metadata["mime_type"],
            title=metadata["title"],
        )

    def auth_headers(self) -> Dict[str, str]:
        return {
            "AuthorizationSignature": self.auth_signature,
            "AuthorizationExpire": str(self.auth_expire),
            "VideoId": self.video_id,
            "LibraryId": str(self.library_id),
        }


@dataclass
class UploadState:
    """Where a transfer stands; pass it back in to resume"""
    upload_url: Optional[str] = None
    offset: int = 0
    total: int = 0

    @property
    def complete(self) -> bool:
        return self.upload_url is not None and self.offset >= self.total


class UploadHandle:
    """A running transfer. Cancelling stops only this transfer"""

    def __init__(self, task: "asyncio.Task[UploadState]", state: UploadState):
        self._task = task
        self.state = state
        self._cancelled = False

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        if self._cancelled or self._task.done():
            return False
        self._cancelled = True
        self._task.cancel()
        logger.info(f"Upload cancelled at offset {self.state.offset}/{self.state.total}")
        return True

    async def wait(self) -> UploadState:
        return await self._task


class _ChunkReader:
    def __init__(self, source: UploadSource):
        if isinstance(source, (bytes, bytearray)):
            self._file: BinaryIO = io.BytesIO(bytes(source))
            self.size = len(source)
        else:
            path = Path(source)
            self._file = open(path, "rb")
            self.size = path.stat().st_size

    def read(self, offset: int, length: int) -> bytes:
        self._file.seek(offset)
        return self._file.read(length)

    def close(self):
        self._file.close()


def encode_metadata(values: Dict[str, str]) -> str:
    """Upload-Metadata header: comma separated `key base64(value)` pairs"""
    parts = []
    for key, value in values.items():
        if value is None:
            continue
        encoded = base64.b64encode(str(value).encode("utf-8")).decode("ascii")
        parts.append(f"{key} {encoded}")
    return ",".join(parts)


class ResumableUploadClient:
    def __init__(
        self,
        chunk_size: int = None,
        chunk_timeout_seconds: float = None,
        max_retries: int = None,
        backoff_seconds: float = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.chunk_size = chunk_size or settings.tus_chunk_size
        self.chunk_timeout_seconds = chunk_timeout_seconds or settings.tus_chunk_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.tus_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.tus_retry_backoff_seconds
        self.clock = clock
        self.sleep = sleep

    def start(
        self,
        credential: UploadCredential,
        source: UploadSource,
        file_name: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
        state: Optional[UploadState] = None,
    ) -> UploadHandle:
        """Run the transfer as its own task and return a handle to it"""
        state = state or UploadState()
        task = asyncio.create_task(self.upload(credential, source, file_name, progress, state))
        return UploadHandle(task, state)

    async def upload(
        self,
        credential: UploadCredential,
        source: UploadSource,
        file_name: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
        state: Optional[UploadState] = None,
    ) -> UploadState:
        state = state or UploadState()
        reader = _ChunkReader(source)
        state.total = reader.size
        if file_name is None:
            file_name = credential.title if isinstance(source, (bytes, bytearray)) else Path(source).name

        try:
            timeout = aiohttp.ClientTimeout(total=self.chunk_timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                if state.upload_url is None:
                    state.upload_url = await self._retrying(
                        credential, "create upload",
                        lambda attempt: self._create(session, credential, state.total, file_name),
                    )
                    state.offset = 0
                    logger.info(f"TUS upload created for video {credential.video_id}: {state.upload_url}")
                else:
                    state.offset = await self._retrying(
                        credential, "resume upload",
                        lambda attempt: self._head(session, credential, state.upload_url),
                    )
                    logger.info(f"Resuming upload of video {credential.video_id} at offset {state.offset}/{state.total}")

                while state.offset < state.total:
                    state.offset = await self._retrying(
                        credential, "upload chunk",
                        lambda attempt: self._send_chunk(session, credential, state, reader, resync=attempt > 0),
                    )
                    logger.debug(f"Uploaded {state.offset}/{state.total} bytes of video {credential.video_id}")
                    if progress:
                        progress(state.offset, state.total)
        finally:
            reader.close()

        logger.info(f"Upload finished for video {credential.video_id} ({state.total} bytes)")
        return state

    def _ensure_valid(self, credential: UploadCredential):
        if self.clock() >= credential.auth_expire:
            logger.warning(f"Upload credential for video {credential.video_id} expired")
            raise ExpiredCredentialError("Upload credential has expired")

    async def _retrying(self, credential: UploadCredential, description: str, operation):
        attempt = 0
        while True:
            self._ensure_valid(credential)
            try:
                return await operation(attempt)
            except _TransientError as e:
                if attempt >= self.max_retries:
                    logger.error(f"{description} failed after {attempt + 1} attempts: {e}")
                    raise UpstreamUnavailableError(f"Upload interrupted: {e}") from e
                delay = self.backoff_seconds * (2 ** attempt)
                logger.warning(f"{description} failed (attempt {attempt + 1}/{self.max_retries + 1}): {e}; "
                               f"retrying in {delay}s")
                attempt += 1
                await self.sleep(delay)

    def _headers(self, credential: UploadCredential, extra: Dict[str, str] = None) -> Dict[str, str]:
        headers = {"Tus-Resumable": TUS_VERSION}
        headers.update(credential.auth_headers())
        if extra:
            headers.update(extra)
        return headers

    async def _check(self, response: aiohttp.ClientResponse, credential: UploadCredential, ok=(200, 201, 204)):
        status = response.status
        if status in ok:
            return
        body = await response.text()
        if status == 409:
            raise _OffsetConflict(body)
        if status >= 500 or status in RETRYABLE_STATUSES:
            raise _TransientError(f"status {status}")
        if status in (401, 403):
            if self.clock() >= credential.auth_expire:
                raise ExpiredCredentialError("Upload credential has expired")
            raise PermissionDeniedError(f"Upload rejected by stream host (status {status})")
        logger.error(f"Upload failed with status {status}: {body}")
        raise UploadFailedError(f"Upload failed with status {status}")

    async def _create(self, session: aiohttp.ClientSession, credential: UploadCredential,
                      total: int, file_name: str) -> str:
        headers = self._headers(credential, {
            "Upload-Length": str(total),
            "Upload-Metadata": encode_metadata({
                "filename": file_name,
                "filetype": credential.mime_type,
                "title": credential.title,
            }),
        })
        try:
            async with session.post(credential.endpoint, headers=headers) as response:
                await self._check(response, credential, ok=(200, 201))
                location = response.headers.get("Location")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise _TransientError(str(e) or type(e).__name__) from e
        except _OffsetConflict as e:
            raise UploadFailedError("Upload could not be created") from e

        if not location:
            raise UploadFailedError("Stream host did not return an upload location")
        return urljoin(credential.endpoint, location)

    async def _head(self, session: aiohttp.ClientSession, credential: UploadCredential, upload_url: str) -> int:
        try:
            async with session.head(upload_url, headers=self._headers(credential)) as response:
                await self._check(response, credential, ok=(200, 204))
                offset = response.headers.get("Upload-Offset")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise _TransientError(str(e) or type(e).__name__) from e
        except _OffsetConflict as e:
            raise UploadFailedError("Upload offset could not be read") from e

        if offset is None:
            raise UploadFailedError("Stream host did not report an upload offset")
        return int(offset)

    async def _patch(self, session: aiohttp.ClientSession, credential: UploadCredential,
                     upload_url: str, offset: int, chunk: bytes) -> int:
        headers = self._headers(credential, {
            "Upload-Offset": str(offset),
            "Content-Type": "application/offset+octet-stream",
        })
        try:
            async with session.patch(upload_url, data=chunk, headers=headers) as response:
                await self._check(response, credential, ok=(200, 204))
                acknowledged = response.headers.get("Upload-Offset")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise _TransientError(str(e) or type(e).__name__) from e

        if acknowledged is None:
            raise UploadFailedError("Stream host did not acknowledge the chunk offset")
        return int(acknowledged)

    async def _send_chunk(self, session: aiohttp.ClientSession, credential: UploadCredential,
                          state: UploadState, reader: _ChunkReader, resync: bool) -> int:
        if resync:
            # The failed attempt may still have landed; ask where the server is
            state.offset = await self._head(session, credential, state.upload_url)
            if state.offset >= state.total:
                return state.offset

        try:
            return await self._patch(session, credential, state.upload_url, state.offset,
                                     reader.read(state.offset, self.chunk_size))
        except _OffsetConflict:
            logger.warning(f"Offset conflict at {state.offset} for video {credential.video_id}, resyncing")

        state.offset = await self._head(session, credential, state.upload_url)
        if state.offset >= state.total:
            return state.offset
        self._ensure_valid(credential)
        try:
            return await self._patch(session, credential, state.upload_url, state.offset,
                                     reader.read(state.offset, self.chunk_size))
        except _OffsetConflict as e:
            raise UploadFailedError("Upload offset conflict persisted after resync") from e
