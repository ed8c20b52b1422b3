"""
Transition tracking for user notifications

Remembers the last status seen for each video in this session and fires a
one-shot notification when a video reaches ready or failed. This is
notification state only; the server row stays authoritative.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Protocol

from reelpipe.core.constants import DEFAULT_FAILURE_MESSAGE, STATUS_ORDER, VideoStatus

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def success(self, video_id: str, message: str) -> None: ...

    def error(self, video_id: str, message: str) -> None: ...


class LoggingNotifier:
    """Default notifier: single-line log messages"""

    def success(self, video_id: str, message: str) -> None:
        logger.info(f"[{video_id}] {message}")

    def error(self, video_id: str, message: str) -> None:
        logger.error(f"[{video_id}] {message}")


@dataclass
class Observation:
    video_id: str
    status: VideoStatus
    sequence: int
    title: Optional[str] = None
    error_message: Optional[str] = None
    progress: Optional[int] = None


@dataclass
class _Entry:
    status: VideoStatus
    sequence: int


class TransitionTracker:
    def __init__(self, notifier: Notifier = None, on_ready: Callable[[str], None] = None):
        self.notifier = notifier or LoggingNotifier()
        self.on_ready = on_ready
        self._entries: Dict[str, _Entry] = {}
        self._seeded = False

    def __contains__(self, video_id: str) -> bool:
        return video_id in self._entries

    def last_status(self, video_id: str) -> Optional[VideoStatus]:
        entry = self._entries.get(video_id)
        return entry.status if entry else None

    def seed(self, observations: Iterable[Observation]) -> None:
        """Record the initial load without notifying"""
        for observation in observations:
            self._entries[observation.video_id] = _Entry(observation.status, observation.sequence)
        self._seeded = True
        logger.debug(f"Transition tracker seeded with {len(self._entries)} videos")

    def observe_batch(self, observations: Iterable[Observation]) -> None:
        observations = list(observations)
        if not self._seeded:
            self.seed(observations)
            return
        for observation in observations:
            self.observe(observation)

    def observe(self, observation: Observation) -> bool:
        """Apply one observation. Returns True when it was applied"""
        previous = self._entries.get(observation.video_id)
        if previous is None:
            self._entries[observation.video_id] = _Entry(observation.status, observation.sequence)
            return True

        if observation.sequence < previous.sequence:
            logger.debug(f"Dropping out-of-order observation for {observation.video_id} "
                         f"(seq {observation.sequence} < {previous.sequence})")
            return False

        if observation.status != previous.status and (
            previous.status.is_terminal
            or STATUS_ORDER[observation.status] < STATUS_ORDER[previous.status]
        ):
            logger.debug(f"Dropping backwards observation for {observation.video_id}: "
                         f"{previous.status.value} -> {observation.status.value}")
            return False

        self._entries[observation.video_id] = _Entry(observation.status, observation.sequence)

        if observation.status == previous.status:
            return True
        if observation.status == VideoStatus.READY:
            label = observation.title or "Video"
            self._notify("success", observation.video_id, f"{label} is ready to watch")
            if self.on_ready:
                try:
                    self.on_ready(observation.video_id)
                except Exception as e:
                    logger.warning(f"Ready callback failed for {observation.video_id}: {e}")
        elif observation.status == VideoStatus.FAILED:
            self._notify("error", observation.video_id, observation.error_message or DEFAULT_FAILURE_MESSAGE)
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._seeded = False

    def _notify(self, kind: str, video_id: str, message: str) -> None:
        try:
            getattr(self.notifier, kind)(video_id, message)
        except Exception as e:
            logger.warning(f"Notifier failed for {video_id}: {e}", exc_info=True)
