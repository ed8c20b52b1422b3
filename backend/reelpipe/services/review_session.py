"""
Client-side application session

A ReviewSession wires the API client, upload client, status poller,
transition tracker and query cache together for one user session. Two
sessions never share state, so each notifies on its own.
"""

import itertools
import logging
from typing import Any, Dict, Iterable, List, Optional

from reelpipe.core.constants import PollContext, VideoStatus
from reelpipe.services.api_client import ReelpipeAPIClient
from reelpipe.services.list_sync import ListSync
from reelpipe.services.query_cache import (
    PROJECT_LIST_KEY, QueryCache, project_detail_key, video_detail_key, video_list_key,
)
from reelpipe.services.status_poller import StatusPoller
from reelpipe.services.transition_tracker import LoggingNotifier, Notifier, Observation, TransitionTracker
from reelpipe.services.tus_upload_client import (
    ProgressCallback, ResumableUploadClient, UploadCredential, UploadHandle, UploadSource,
)

logger = logging.getLogger(__name__)


class ReviewSession:
    def __init__(
        self,
        api: ReelpipeAPIClient,
        notifier: Notifier = None,
        uploader: ResumableUploadClient = None,
        poller_options: Dict[str, Any] = None,
    ):
        self.api = api
        self.notifier = notifier or LoggingNotifier()
        self.uploader = uploader or ResumableUploadClient()
        self.cache = QueryCache()
        self.sync = ListSync(self.cache)
        self.tracker = TransitionTracker(self.notifier, on_ready=self.sync.refresh_detail)
        self._sequence = itertools.count(1)
        self.poller = StatusPoller(
            self.api.get_status,
            self.tracker,
            self.sync,
            next_sequence=self.next_sequence,
            **(poller_options or {}),
        )
        self.uploads: Dict[str, UploadHandle] = {}
        self.closed = False

    def next_sequence(self) -> int:
        return next(self._sequence)

    async def __aenter__(self) -> "ReviewSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # Views

    async def load_project(self, project_id: str, status: Optional[str] = None) -> Dict[str, Any]:
        """Open a project's video list; its videos are tracked and polled from here on"""
        key = video_list_key(project_id, status)

        async def fetch():
            sequence = self.next_sequence()
            data = await self.api.list_videos(project_id, status=status)
            self._ingest(project_id, data.get("videos", []), sequence, PollContext.LIST)
            return data

        self.cache.observe(key, fetch)
        await self.cache.wait_idle()
        return self.cache.get(key)

    async def open_video(self, video_id: str) -> Dict[str, Any]:
        key = video_detail_key(video_id)

        async def fetch():
            sequence = self.next_sequence()
            data = await self.api.get_video(video_id)
            self._ingest(data["project_id"], [data], sequence, PollContext.DETAIL)
            return data

        self.cache.observe(key, fetch)
        await self.cache.wait_idle()
        return self.cache.get(key)

    async def open_project(self, project_id: str) -> Dict[str, Any]:
        key = project_detail_key(project_id)
        self.cache.observe(key, lambda: self.api.get_project(project_id))
        await self.cache.wait_idle()
        return self.cache.get(key)

    async def open_projects(self) -> Dict[str, Any]:
        self.cache.observe(PROJECT_LIST_KEY, self.api.list_projects)
        await self.cache.wait_idle()
        return self.cache.get(PROJECT_LIST_KEY)

    def close_view(self, key) -> None:
        self.cache.unobserve(key)

    async def reload(self, project_id: str, status: Optional[str] = None) -> Dict[str, Any]:
        """Full reload: forget tracked statuses and start over"""
        self.poller.stop_all()
        self.tracker.clear()
        self.cache.invalidate(("videos",))
        await self.cache.wait_idle()
        return await self.load_project(project_id, status)

    def _ingest(self, project_id: str, items: Iterable[Dict[str, Any]], sequence: int,
                context: PollContext) -> None:
        # Only unseen ids are recorded here; transitions come from status polls
        fresh = [item for item in items if item["id"] not in self.tracker]
        self.tracker.observe_batch(
            Observation(
                video_id=item["id"],
                status=VideoStatus(item["status"]),
                sequence=sequence,
                title=item.get("title"),
            )
            for item in fresh
        )
        for item in items:
            status = self.tracker.last_status(item["id"]) or VideoStatus(item["status"])
            self.poller.watch(item["id"], project_id, status, context, title=item.get("title"))

    # Mutations

    async def start_upload(
        self,
        request: Dict[str, Any],
        source: UploadSource,
        progress: Optional[ProgressCallback] = None,
    ) -> UploadHandle:
        """Issue a credential, then run the transfer in the background"""
        response = await self.api.create_upload(request)
        video = response["video"]
        credential = UploadCredential.from_response(response)

        self.sync.after_upload_created(request["project_id"], video["id"])
        self.tracker.observe(Observation(
            video_id=video["id"],
            status=VideoStatus(video["status"]),
            sequence=self.next_sequence(),
            title=request.get("title"),
        ))
        self.poller.watch(video["id"], request["project_id"], VideoStatus(video["status"]),
                          PollContext.LIST, title=request.get("title"))

        handle = self.uploader.start(credential, source, file_name=request.get("file_name"), progress=progress)
        self.uploads[video["id"]] = handle
        logger.info(f"Upload started for video {video['id']}")
        return handle

    def cancel_upload(self, video_id: str) -> bool:
        handle = self.uploads.get(video_id)
        if handle is None:
            return False
        return handle.cancel()

    async def update_metadata(self, project_id: str, video_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.api.update_video(video_id, changes)
        self.sync.after_metadata_update(project_id, video_id)
        return result

    async def delete_video(self, project_id: str, video_id: str) -> Dict[str, Any]:
        result = await self.api.delete_video(video_id)
        self.poller.stop(video_id)
        self.sync.after_delete(project_id, video_id)
        return result

    async def bulk_delete(self, project_video_ids: Dict[str, List[str]]) -> Dict[str, Any]:
        ids = [video_id for video_ids in project_video_ids.values() for video_id in video_ids]
        result = await self.api.bulk_delete(ids)
        for video_id in ids:
            self.poller.stop(video_id)
        self.sync.after_bulk_delete(project_video_ids)
        for warning in result.get("warnings", []):
            logger.warning(f"Bulk delete warning {warning.get('code')}: {warning.get('message')}")
        return result

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.poller.close()
        for handle in self.uploads.values():
            handle.cancel()
        await self.cache.close()
        await self.api.close()
        logger.debug("Review session closed")
