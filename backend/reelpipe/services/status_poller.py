"""
Per-video processing status polling

Every watched video id gets its own asyncio task that asks the API for the
video's status until it is ready or failed. A terminal id is never polled
again in this session.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import aiohttp

from reelpipe.core.config import settings
from reelpipe.core.constants import MIN_POLL_INTERVAL_SECONDS, PollContext, PollerState, VideoStatus
from reelpipe.core.exceptions import NotFoundError, PermissionDeniedError, UpstreamUnavailableError
from reelpipe.services.list_sync import ListSync
from reelpipe.services.transition_tracker import Observation, TransitionTracker

logger = logging.getLogger(__name__)

StatusFetcher = Callable[[str], Awaitable[Dict[str, Any]]]

TRANSIENT_ERRORS = (asyncio.TimeoutError, aiohttp.ClientError, UpstreamUnavailableError, OSError)


@dataclass
class _Watch:
    video_id: str
    project_id: str
    interval: float
    title: Optional[str] = None
    task: Optional["asyncio.Task[None]"] = None


class StatusPoller:
    def __init__(
        self,
        fetch_status: StatusFetcher,
        tracker: TransitionTracker,
        sync: ListSync,
        next_sequence: Callable[[], int] = None,
        detail_interval: float = None,
        list_interval: float = None,
        timeout_seconds: float = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetch_status = fetch_status
        self.tracker = tracker
        self.sync = sync
        self.next_sequence = next_sequence or itertools.count(1).__next__
        self.intervals = {
            PollContext.DETAIL: max(MIN_POLL_INTERVAL_SECONDS, detail_interval or settings.poll_interval_detail_seconds),
            PollContext.LIST: max(MIN_POLL_INTERVAL_SECONDS, list_interval or settings.poll_interval_list_seconds),
        }
        self.timeout_seconds = timeout_seconds or settings.poll_timeout_seconds
        self.sleep = sleep
        self.latest: Dict[str, Dict[str, Any]] = {}
        self._watches: Dict[str, _Watch] = {}
        self._terminal: Set[str] = set()

    def state(self, video_id: str) -> PollerState:
        if video_id in self._terminal:
            return PollerState.TERMINAL
        if video_id in self._watches:
            return PollerState.POLLING
        return PollerState.IDLE

    def watch(
        self,
        video_id: str,
        project_id: str,
        status: VideoStatus,
        context: PollContext = PollContext.LIST,
        title: str = None,
    ) -> PollerState:
        if video_id in self._terminal:
            return PollerState.TERMINAL

        if VideoStatus(status).is_terminal:
            self._terminal.add(video_id)
            self.stop(video_id)
            return PollerState.TERMINAL

        interval = self.intervals[PollContext(context)]
        existing = self._watches.get(video_id)
        if existing is not None:
            existing.interval = min(existing.interval, interval)
            return PollerState.POLLING

        watch = _Watch(video_id=video_id, project_id=project_id, interval=interval, title=title)
        watch.task = asyncio.create_task(self._run(watch))
        self._watches[video_id] = watch
        logger.debug(f"Polling {video_id} every {interval}s ({PollContext(context).value})")
        return PollerState.POLLING

    def interval(self, video_id: str) -> Optional[float]:
        watch = self._watches.get(video_id)
        return watch.interval if watch else None

    def stop(self, video_id: str) -> bool:
        watch = self._watches.pop(video_id, None)
        if watch is None:
            return False
        if watch.task is not None and not watch.task.done():
            watch.task.cancel()
        return True

    def stop_all(self) -> int:
        stopped = 0
        for video_id in list(self._watches):
            if self.stop(video_id):
                stopped += 1
        return stopped

    async def close(self) -> None:
        tasks = [watch.task for watch in self._watches.values() if watch.task is not None]
        self.stop_all()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, watch: _Watch) -> None:
        try:
            while True:
                if await self._tick(watch):
                    return
                await self.sleep(watch.interval)
        finally:
            if self._watches.get(watch.video_id) is watch:
                del self._watches[watch.video_id]

    async def _tick(self, watch: _Watch) -> bool:
        """One status request. Returns True when polling for this id is over"""
        sequence = self.next_sequence()
        try:
            data = await asyncio.wait_for(self.fetch_status(watch.video_id), self.timeout_seconds)
            status = VideoStatus(data["status"])
        except (NotFoundError, PermissionDeniedError) as e:
            logger.info(f"Stopped polling {watch.video_id}: {e}")
            return True
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Status poll for {watch.video_id} missed: {e!r}")
            return False
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Unreadable status payload for {watch.video_id}: {e!r}")
            return False

        self.latest[watch.video_id] = data
        self.tracker.observe(Observation(
            video_id=watch.video_id,
            status=status,
            sequence=sequence,
            title=watch.title,
            error_message=data.get("error_message"),
            progress=data.get("progress"),
        ))

        if status.is_terminal:
            self._terminal.add(watch.video_id)
            logger.info(f"Video {watch.video_id} is {status.value}; polling stopped")
            self.sync.after_terminal(watch.project_id, watch.video_id)
            return True
        return False
